# main.py
from fastapi import FastAPI, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response
import logging
import os
from typing import List, Optional
from urllib.parse import urlencode

from models import (
    ChatMessage,
    ChatPost,
    ErrorResponse,
    ForgiveRequest,
    HealthResponse,
    LoginResponse,
    LookupResponse,
    MessageResponse,
)
from errors import BadRequest, LinkError, StoreError
from mapping_store import MappingStore
from discord_client import DiscordClient
from pending_links import PendingLinkStore
from link_manager import LinkManager
from chat_log import ChatLog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger("discord-link-relay")

FRONTEND_URL = os.getenv("FRONTEND_URL", "https://treasure-hunt-frontend-livid.vercel.app")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
PORT = int(os.getenv("PORT", "3000"))

# create app
app = FastAPI(title="Discord Link Relay")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# process-wide state: the store owns the lock that serializes mapping writes
mapping_store = MappingStore()
pending_links = PendingLinkStore()
chat_log = ChatLog()


@app.on_event("startup")
async def startup_event():
    logger.info("Starting up, mappings file at %s", mapping_store.path)
    try:
        mapping_store.initialize()
    except StoreError:
        logger.exception("Could not create mappings file; links will fail until it is writable")


@app.exception_handler(LinkError)
async def link_error_handler(request: Request, exc: LinkError):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message, code=exc.code).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info("Invalid request format on %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="Invalid request format", code=BadRequest.code).model_dump(),
    )


# Dependency providers
async def get_mapping_store() -> MappingStore:
    return mapping_store

async def get_pending_links() -> PendingLinkStore:
    return pending_links

async def get_chat_log() -> ChatLog:
    return chat_log

async def get_discord_client() -> DiscordClient:
    return DiscordClient()

async def get_link_manager(
    store: MappingStore = Depends(get_mapping_store),
    discord: DiscordClient = Depends(get_discord_client),
    pending: PendingLinkStore = Depends(get_pending_links),
) -> LinkManager:
    return LinkManager(store=store, discord=discord, pending=pending)


def _frontend_redirect(**params: str) -> RedirectResponse:
    return RedirectResponse(url=f"{FRONTEND_URL}?{urlencode(params)}", status_code=302)


@app.get("/health", response_model=HealthResponse)
async def health(discord: DiscordClient = Depends(get_discord_client)):
    return HealthResponse(discord_configured=discord.is_configured)


@app.get("/discord/login", response_model=LoginResponse)
async def discord_login(
    address: Optional[str] = Query(default=None, description="Wallet address to link."),
    redirect: bool = Query(default=True, description="Redirect to Discord instead of returning JSON."),
    discord: DiscordClient = Depends(get_discord_client),
    pending: PendingLinkStore = Depends(get_pending_links),
) -> Response:
    """
    Begin a linking attempt: bind a fresh state token to the wallet address
    and send the browser to Discord's consent screen.
    """
    if not address or not address.strip():
        raise BadRequest("Address is required")
    state = pending.issue(address)
    authorization_url = discord.authorize_url(state)
    if redirect:
        return RedirectResponse(url=authorization_url, status_code=302)
    return JSONResponse(content=LoginResponse(authorization_url=authorization_url, state=state).model_dump())


@app.get("/discord/callback")
async def discord_callback(
    code: Optional[str] = Query(default=None, description="Authorization code from Discord."),
    state: Optional[str] = Query(default=None, description="Login state token or wallet address."),
    linker: LinkManager = Depends(get_link_manager),
) -> Response:
    """
    OAuth redirect target. Missing parameters are a 400; every other outcome
    sends the browser back to the frontend with a `linked` flag.
    """
    if not code or not code.strip() or not state or not state.strip():
        raise BadRequest("Missing code or state")

    try:
        result = await linker.link(code, state)
    except LinkError as exc:
        logger.warning("Discord link failed (%s): %s", exc.code, exc.message)
        params = {"linked": "false", "error": exc.code}
        existing = getattr(exc, "existing_address", None)
        if existing:
            params["existing"] = existing
        return _frontend_redirect(**params)
    except Exception:
        logger.exception("Unhandled error in Discord callback")
        return _frontend_redirect(linked="false", error="internal_error")

    return _frontend_redirect(linked="true", address=result.address)


@app.post("/discord/forgive", response_model=MessageResponse)
async def discord_forgive(
    payload: ForgiveRequest,
    linker: LinkManager = Depends(get_link_manager),
):
    await linker.forgive(payload.address)
    return MessageResponse(message="User forgiven")


@app.get("/discord/{address}", response_model=LookupResponse)
async def discord_lookup(
    address: str,
    linker: LinkManager = Depends(get_link_manager),
):
    return LookupResponse(discordId=await linker.lookup(address))


@app.get("/api/chat", response_model=List[ChatMessage])
async def list_chat(log: ChatLog = Depends(get_chat_log)):
    return log.list()


@app.post("/api/chat", response_model=ChatMessage, status_code=201)
async def post_chat(payload: ChatPost, log: ChatLog = Depends(get_chat_log)):
    return await log.append(payload.user, payload.text)


if __name__ == "__main__":
    import uvicorn

    logger.info("Server running on port %s", PORT)
    uvicorn.run(app, host="0.0.0.0", port=PORT)
