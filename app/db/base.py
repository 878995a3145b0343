from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Nomes explícitos: o Alembic em batch mode (SQLite) precisa deles para recriar constraints
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """
    Base declarativa das tabelas users e refresh_tokens.
    """
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
