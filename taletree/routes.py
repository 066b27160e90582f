"""FastAPI endpoints under /api.

The API is a thin view over the single SessionController held on
app.state.controller: GET returns its state, POSTs invoke its operations.
Generation endpoints wait for the scene by default; pass ?wait=false to
return as soon as the controller enters `generating` and poll
GET /api/session for progress and loading messages.
"""

import asyncio

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from taletree.controller import InvalidTransition, SessionController
from taletree.models import GENRES, find_genre

router = APIRouter()


class GenreBody(BaseModel):
    genre: str


class ChoiceBody(BaseModel):
    option: str


def _controller(request: Request) -> SessionController:
    return request.app.state.controller


async def _settle(task: asyncio.Task) -> None:
    """Wait for a generation without cancelling it if the request goes away.

    A confirmed quit cancels the pending generation; the waiting request
    then simply reports the new state.
    """
    try:
        await asyncio.shield(task)
    except asyncio.CancelledError:
        if not task.cancelled():
            raise


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/genres")
async def list_genres():
    """List the selectable genres."""
    return [g.model_dump() for g in GENRES]


@router.get("/session")
async def get_session(request: Request):
    """Current session state."""
    return _controller(request).state()


@router.post("/session/genre")
async def select_genre(request: Request, body: GenreBody, wait: bool = True):
    """Start a new story in the given genre (id or label)."""
    genre = find_genre(body.genre)
    if genre is None:
        raise HTTPException(400, f"Unknown genre: {body.genre}")
    controller = _controller(request)
    try:
        task = controller.select_genre(genre)
    except InvalidTransition as e:
        raise HTTPException(409, str(e))
    if wait:
        await _settle(task)
    return controller.state()


@router.post("/session/choice")
async def choose_option(request: Request, body: ChoiceBody, wait: bool = True):
    """Pick one of the revealed options."""
    controller = _controller(request)
    try:
        task = controller.choose_option(body.option)
    except InvalidTransition as e:
        raise HTTPException(409, str(e))
    except ValueError as e:
        raise HTTPException(422, str(e))
    if wait:
        await _settle(task)
    return controller.state()


@router.post("/session/reveal")
async def reveal_options(request: Request):
    """Mark the current scene as fully shown so its options become available."""
    controller = _controller(request)
    controller.reveal_options()
    return controller.state()


@router.post("/session/quit")
async def request_quit(request: Request):
    """Ask to quit; needs a confirm."""
    controller = _controller(request)
    try:
        controller.request_quit()
    except InvalidTransition as e:
        raise HTTPException(409, str(e))
    return controller.state()


@router.post("/session/quit/cancel")
async def cancel_quit(request: Request):
    controller = _controller(request)
    controller.cancel_quit()
    return controller.state()


@router.post("/session/quit/confirm")
async def confirm_quit(request: Request):
    """Abandon the story and delete its save."""
    controller = _controller(request)
    try:
        controller.confirm_quit()
    except InvalidTransition as e:
        raise HTTPException(409, str(e))
    return controller.state()


@router.post("/session/restart")
async def restart(request: Request):
    """Leave the error screen for a fresh start."""
    controller = _controller(request)
    try:
        controller.restart()
    except InvalidTransition as e:
        raise HTTPException(409, str(e))
    return controller.state()
