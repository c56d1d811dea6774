"""Initialize the database tables."""

from cod_relay.core.dependencies import get_settings
from cod_relay.core.store import CredentialStore

if __name__ == "__main__":
    print("Creating database tables...")
    CredentialStore.from_url(get_settings().database_url).create_tables()
    print("Tables created successfully!")
