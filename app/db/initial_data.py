# tokenline/app/db/initial_data.py
import asyncio

from loguru import logger

# 1. Importar a Base
from app.db.base import Base
from app.db.session import get_async_engine, dispose_engine

# 2. Importar TODOS os modelos para que Base.metadata os conheça
from app.models import user # noqa F401
from app.models import refresh_token # noqa F401

async def init_db(drop_existing: bool = False) -> None:
    """Create every table from the ORM metadata (local development bootstrap)."""
    engine = get_async_engine()
    async with engine.begin() as conn:
        if drop_existing:
            logger.info("Removendo todas as tabelas existentes (se houver)...")
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Criando todas as tabelas definidas nos modelos...")
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Processo de inicialização do banco de dados concluído.")

async def main() -> None:
    try:
        await init_db()
    finally:
        await dispose_engine()

if __name__ == "__main__":
    asyncio.run(main())
