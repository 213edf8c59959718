import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, WebSocket
from fastapi.responses import JSONResponse, PlainTextResponse

from frontdesk.agent_legs import DialAgentFlow, DialSpecialistFlow
from frontdesk.api_client import PrivateApiClient
from frontdesk.config import Settings, validate_config
from frontdesk.lifecycle import CallLifecycle
from frontdesk.logs import configure_logging
from frontdesk.transport import SUBPROTOCOL, FlowFactory, JambonzConnection
from frontdesk.warm_transfer import WarmTransferFlow

load_dotenv()

logger = logging.getLogger(__name__)

SERVICE_NAME = "frontdesk-voice"
DEFAULT_PORT = 3000


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    validate_config()
    settings = Settings.from_env()
    app.state.settings = settings
    app.state.api = PrivateApiClient(settings.private_api_url, settings.private_api_key)
    logger.info("Private API at %s, model %s", settings.private_api_url, settings.realtime_model)
    try:
        yield
    finally:
        await app.state.api.close()


app = FastAPI(title="Front Desk Voice Receptionist", lifespan=lifespan)


@app.get("/health")
async def health():
    return PlainTextResponse("ok")


@app.get("/")
async def info():
    return JSONResponse({
        "service": SERVICE_NAME,
        "endpoints": ["/main", "/warm-transfer", "/dial-agent", "/dial-specialist"],
        "subprotocol": SUBPROTOCOL,
    })


async def _serve(websocket: WebSocket, factory: FlowFactory, path: str):
    await websocket.accept(subprotocol=SUBPROTOCOL)
    logger.info("jambonz connected on %s", path)
    await JambonzConnection(websocket, factory, path).serve()
    logger.info("jambonz disconnected from %s", path)


@app.websocket("/main")
async def main_service(websocket: WebSocket):
    settings = websocket.app.state.settings
    api = websocket.app.state.api
    await _serve(websocket, lambda transport: CallLifecycle(transport, api, settings), "/main")


@app.websocket("/warm-transfer")
async def warm_transfer_service(websocket: WebSocket):
    settings = websocket.app.state.settings
    api = websocket.app.state.api
    await _serve(websocket, lambda transport: WarmTransferFlow(transport, api, settings), "/warm-transfer")


@app.websocket("/dial-agent")
async def dial_agent_service(websocket: WebSocket):
    await _serve(websocket, DialAgentFlow, "/dial-agent")


@app.websocket("/dial-specialist")
async def dial_specialist_service(websocket: WebSocket):
    await _serve(websocket, DialSpecialistFlow, "/dial-specialist")


def main():
    port = int(os.getenv("WS_PORT") or os.getenv("PORT") or DEFAULT_PORT)
    uvicorn.run("frontdesk.bot:app", host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
