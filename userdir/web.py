"""HTML interface for the user directory."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from .accounts import AccountController, Outcome, OutcomeKind
from .database import Database
from .security import CredentialService
from .sessions import SessionContext

logger = logging.getLogger("userdir.web")

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

SESSION_TOKEN_KEY = "session_token"
RETURN_TO_KEY = "return_to"

_TEMPLATES = {
    OutcomeKind.RENDER_INDEX: ("users/index.html", "All users"),
    OutcomeKind.RENDER_SHOW: ("users/show.html", None),
    OutcomeKind.RENDER_NEW: ("users/new.html", "Sign up"),
    OutcomeKind.RENDER_EDIT: ("users/edit.html", "Edit user"),
    OutcomeKind.RENDER_SIGN_IN: ("sessions/new.html", "Sign in"),
    OutcomeKind.NOT_FOUND: ("not_found.html", "Not found"),
}


def _parse_page(raw: Optional[str]) -> int:
    if raw is None:
        return 1
    try:
        return int(raw)
    except ValueError:
        return 1


async def _read_form(request: Request) -> Dict[str, str]:
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


def register_ui_routes(
    app: FastAPI,
    *,
    controller: AccountController,
    database: Database,
    credentials: CredentialService,
) -> None:
    """Expose the HTML directory interface on the provided FastAPI app."""

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    router = APIRouter(include_in_schema=False)

    def _flash(request: Request, message: str, *, category: str = "info") -> None:
        messages = request.session.get("flash_messages")
        if not isinstance(messages, list):
            messages = []
        messages.append({"message": message, "category": category})
        request.session["flash_messages"] = messages

    def _consume_flash(request: Request) -> List[Dict[str, str]]:
        messages = request.session.pop("flash_messages", [])
        if isinstance(messages, list):
            return messages
        return []

    def _session_context(request: Request) -> SessionContext:
        token = request.session.get(SESSION_TOKEN_KEY)
        session = SessionContext.resolve(token, credentials, database)
        if token and not session.is_signed_in():
            request.session.pop(SESSION_TOKEN_KEY, None)
        return session

    def _remember_session(request: Request, session: SessionContext) -> None:
        if session.token:
            request.session[SESSION_TOKEN_KEY] = session.token
        else:
            request.session.pop(SESSION_TOKEN_KEY, None)

    def _redirect(url: object) -> RedirectResponse:
        return RedirectResponse(str(url), status_code=status.HTTP_303_SEE_OTHER)

    def _render(
        request: Request,
        template: str,
        *,
        session: SessionContext,
        title: str,
        context: Mapping[str, object],
        status_code: int = status.HTTP_200_OK,
    ) -> HTMLResponse:
        current_user = None
        if session.is_signed_in():
            current_user = database.find_user(session.current_user_id())
        payload = {
            "title": title,
            "current_user": current_user,
            "messages": _consume_flash(request),
            "users_path": request.app.url_path_for("users_index"),
        }
        payload.update(context)
        return templates.TemplateResponse(request, template, payload, status_code=status_code)

    def _respond(request: Request, outcome: Outcome, session: SessionContext) -> Response:
        if outcome.kind is OutcomeKind.REQUIRE_SIGN_IN:
            if request.method == "GET":
                request.session[RETURN_TO_KEY] = str(request.url.path) + (
                    f"?{request.url.query}" if request.url.query else ""
                )
            _flash(request, outcome.notice or "Please sign in.", category="notice")
            return _redirect(request.url_for("signin_form"))

        if outcome.kind is OutcomeKind.REDIRECT_TO_ROOT:
            if outcome.session is not None:
                _remember_session(request, outcome.session)
            if outcome.notice:
                _flash(request, outcome.notice, category="notice")
            return _redirect(request.url_for("home"))

        if outcome.kind is OutcomeKind.REDIRECT_TO_SHOW:
            if outcome.session is not None:
                _remember_session(request, outcome.session)
            if outcome.notice:
                _flash(request, outcome.notice, category="success")
            return _redirect(request.url_for("users_show", user_id=outcome.user_id))

        template, title = _TEMPLATES[outcome.kind]
        if outcome.kind is OutcomeKind.RENDER_SHOW and outcome.user is not None:
            title = outcome.user.name
        status_code = (
            status.HTTP_404_NOT_FOUND
            if outcome.kind is OutcomeKind.NOT_FOUND
            else status.HTTP_200_OK
        )
        return _render(
            request,
            template,
            session=session,
            title=title or "",
            status_code=status_code,
            context={
                "user": outcome.user,
                "page": outcome.page,
                "form": outcome.form,
                "errors": list(outcome.errors),
            },
        )

    @router.get("/", response_class=HTMLResponse, name="home")
    async def home(request: Request):
        session = _session_context(request)
        return _render(request, "home.html", session=session, title="Home", context={})

    @router.get("/users", response_class=HTMLResponse, name="users_index")
    async def users_index(request: Request, page: Optional[str] = None):
        session = _session_context(request)
        return _respond(request, controller.index(session, _parse_page(page)), session)

    @router.get("/users/new", response_class=HTMLResponse, name="users_new")
    async def users_new(request: Request):
        session = _session_context(request)
        return _respond(request, controller.new(session), session)

    @router.get("/signup", response_class=HTMLResponse, name="signup")
    async def signup(request: Request):
        return await users_new(request)

    @router.post("/users", name="users_create")
    async def users_create(request: Request):
        session = _session_context(request)
        data = await _read_form(request)
        return _respond(request, controller.create(session, data), session)

    @router.get("/users/{user_id:int}", response_class=HTMLResponse, name="users_show")
    async def users_show(request: Request, user_id: int):
        session = _session_context(request)
        return _respond(request, controller.show(session, user_id), session)

    @router.get("/users/{user_id:int}/edit", response_class=HTMLResponse, name="users_edit")
    async def users_edit(request: Request, user_id: int):
        session = _session_context(request)
        return _respond(request, controller.edit(session, user_id), session)

    @router.api_route("/users/{user_id:int}", methods=["POST", "PUT"], name="users_update")
    async def users_update(request: Request, user_id: int):
        session = _session_context(request)
        data = await _read_form(request)
        return _respond(request, controller.update(session, user_id, data), session)

    @router.get("/signin", response_class=HTMLResponse, name="signin_form")
    async def signin_form(request: Request):
        session = _session_context(request)
        return _render(
            request,
            "sessions/new.html",
            session=session,
            title="Sign in",
            context={"form": {"email": ""}, "errors": []},
        )

    @router.post("/signin", name="signin")
    async def signin(request: Request):
        session = _session_context(request)
        data = await _read_form(request)
        outcome = controller.sign_in(session, data)
        if outcome.kind is not OutcomeKind.REDIRECT_TO_SHOW:
            return _respond(request, outcome, session)

        # Only same-site paths are honoured when forwarding after sign-in.
        return_to = request.session.pop(RETURN_TO_KEY, None)
        if isinstance(return_to, str) and return_to.startswith("/") and not return_to.startswith("//"):
            _remember_session(request, outcome.session)
            return _redirect(return_to)
        return _respond(request, outcome, session)

    @router.get("/signout", name="signout")
    async def signout(request: Request):
        session = _session_context(request)
        request.session.pop(RETURN_TO_KEY, None)
        return _respond(request, controller.sign_out(session), session)

    app.include_router(router)


__all__ = ["register_ui_routes"]
