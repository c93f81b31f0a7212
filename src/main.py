import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from americano.broadcast import ConnectionManager
from americano.router import router as americano_router
from americano.service import TournamentService
from americano.store import MemoryTournamentStore
from config import AMERICANO_STORE, AUTO_ADVANCE, LOG_LEVEL

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _make_store():
    if AMERICANO_STORE == "memory":
        # In-memory storage, lost on restart
        return MemoryTournamentStore()
    from database import SqlTournamentStore
    return SqlTournamentStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if AMERICANO_STORE != "memory":
        from database import init_db
        await init_db()
    logger.info("Padel Americano started with %s store", AMERICANO_STORE)
    yield


app = FastAPI(title="Padel Americano", lifespan=lifespan)
app.state.channel = ConnectionManager()
app.state.service = TournamentService(_make_store(), app.state.channel, auto_advance=AUTO_ADVANCE)
app.include_router(americano_router)


@app.get("/health")
async def health():
    return {"status": "ok", "store": AMERICANO_STORE}
