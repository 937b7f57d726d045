"""Shared fixtures: an in-memory habit service behind httpx.MockTransport"""

import asyncio
import json
import secrets
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import httpx
import pytest
from cryptography.fernet import Fernet

from habitsync.api.gateway import GatewayClient
from habitsync.auth.credential_store import EncryptedFileCredentialStore
from habitsync.auth.session_manager import AuthSessionManager
from habitsync.services.habit_sync import HabitSyncController

BASE_URL = "http://habits.test/api"


def _json(status: int, payload: Dict[str, Any]) -> httpx.Response:
    return httpx.Response(status, json=payload)


class FakeHabitServer:
    """Implements the service contract in memory. Streaks are computed here, as on the real server."""

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.tokens: Dict[str, int] = {}
        self.habits: Dict[int, Dict[str, Any]] = {}
        self.check_ins: Dict[int, List[Dict[str, Any]]] = {}
        self.requests: List[httpx.Request] = []
        self.offline = False
        self.fail_next: List[httpx.Response] = []
        self._next_id = 1

    # -- helpers used by tests ------------------------------------------------

    def add_user(self, email: str, password: str, name: str = "Test User") -> Dict[str, Any]:
        user = {"id": self._new_id(), "email": email, "name": name, "password": password}
        self.users[email] = user
        return user

    def issue_token(self, email: str) -> str:
        token = secrets.token_urlsafe(16)
        self.tokens[token] = self.users[email]["id"]
        return token

    def revoke_all_tokens(self) -> None:
        self.tokens.clear()

    def auth_headers_seen(self) -> List[Optional[str]]:
        return [r.headers.get("Authorization") for r in self.requests]

    def paths_seen(self) -> List[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]

    # -- internals ------------------------------------------------------------

    def _new_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    @staticmethod
    def _public(user: Dict[str, Any]) -> Dict[str, Any]:
        return {"id": user["id"], "email": user["email"], "name": user["name"], "picture": None}

    def _current_user(self, request: httpx.Request) -> Optional[Dict[str, Any]]:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return None
        user_id = self.tokens.get(header[len("Bearer "):])
        return next((u for u in self.users.values() if u["id"] == user_id), None)

    def _streak(self, habit_id: int) -> int:
        dates = sorted({date.fromisoformat(c["check_in_date"]) for c in self.check_ins.get(habit_id, [])}, reverse=True)
        streak = 0
        expected = dates[0] if dates else None
        for d in dates:
            if d != expected:
                break
            streak += 1
            expected = d - timedelta(days=1)
        return streak

    def _habit_view(self, habit: Dict[str, Any]) -> Dict[str, Any]:
        view = {k: v for k, v in habit.items() if k != "user_id"}
        view["streak"] = self._streak(habit["id"])
        return view

    def _login_response(self, user: Dict[str, Any]) -> httpx.Response:
        token = self.issue_token(user["email"])
        return _json(200, {"success": True, "token": token, "user": self._public(user)})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("Network is unreachable", request=request)
        if self.fail_next:
            return self.fail_next.pop(0)

        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api"):]
        body = json.loads(request.content) if request.content else {}
        method = request.method

        if method == "POST" and path == "/auth/login":
            user = self.users.get(body.get("email"))
            if not user or user["password"] != body.get("password"):
                return _json(401, {"error": "Invalid email or password"})
            return self._login_response(user)

        if method == "POST" and path == "/auth/register":
            password = body.get("password") or ""
            problems = []
            if len(password) < 6:
                problems.append("Password must be at least 6 characters long")
            if not any(c.isupper() for c in password):
                problems.append("Password must contain at least 1 uppercase letter")
            if not any(c.islower() for c in password):
                problems.append("Password must contain at least 1 lowercase letter")
            if problems:
                return _json(400, {"error": "Password does not meet requirements", "details": {"password": problems}})
            if body.get("email") in self.users:
                return _json(409, {"error": "Email already registered"})
            user = self.add_user(body["email"], password, body.get("name") or "")
            return self._login_response(user)

        if method == "POST" and path == "/auth/google":
            if body.get("idToken") != "google-id-token":
                return _json(401, {"error": "Invalid Google token"})
            user = self.users.get("g@example.com") or self.add_user("g@example.com", "", "Google User")
            return self._login_response(user)

        user = self._current_user(request)
        if user is None:
            return _json(401, {"error": "Invalid or expired token"})

        if method == "GET" and path == "/auth/verify":
            return _json(200, {"success": True, "valid": True, "user": self._public(user)})

        if method == "PUT" and path == "/auth/profile":
            user["name"] = body.get("name", user["name"])
            if body.get("password"):
                user["password"] = body["password"]
            return _json(200, {"success": True, "user": self._public(user)})

        if method == "GET" and path == "/habits":
            habits = [self._habit_view(h) for h in self.habits.values() if h["user_id"] == user["id"]]
            return _json(200, {"success": True, "habits": habits})

        if method == "POST" and path == "/habits":
            if not body.get("title"):
                return _json(400, {"error": "Title is required"})
            habit = {
                "id": self._new_id(),
                "user_id": user["id"],
                "title": body["title"],
                "description": body.get("description"),
                "icon": body.get("icon"),
                "colour": body.get("colour"),
                "created_at": "2026-01-01T00:00:00.000Z",
            }
            self.habits[habit["id"]] = habit
            return _json(201, {"success": True, "habit": self._habit_view(habit)})

        parts = path.strip("/").split("/")
        if len(parts) >= 2 and parts[0] == "habits":
            habit = self.habits.get(int(parts[1]))
            if habit is None or habit["user_id"] != user["id"]:
                return _json(404, {"error": "Habit not found"})

            if method == "PUT" and len(parts) == 2:
                habit.update({k: body.get(k) for k in ("title", "description", "icon", "colour")})
                return _json(200, {"success": True, "habit": self._habit_view(habit)})

            if method == "POST" and parts[2:] == ["checkin"]:
                local_date = body.get("localDate")
                existing = self.check_ins.setdefault(habit["id"], [])
                if any(c["check_in_date"] == local_date for c in existing):
                    return _json(400, {"error": "Already checked in today"})
                existing.append({
                    "id": self._new_id(),
                    "habit_id": habit["id"],
                    "check_in_date": local_date,
                    "image_url": None,
                    "created_at": f"{local_date}T08:00:00.000Z",
                })
                return _json(201, {"success": True, "habit": self._habit_view(habit)})

            if method == "GET" and parts[2:] == ["checkins"]:
                return _json(200, {"success": True, "checkIns": list(reversed(self.check_ins.get(habit["id"], [])))})

        return _json(404, {"error": "Not found"})


class Gate:
    """Transport handler that holds the next matching request until released"""

    def __init__(self, server: FakeHabitServer, method: str, path_suffix: str, armed: bool = True):
        self.server = server
        self.method = method
        self.path_suffix = path_suffix
        self.armed = armed
        self.reached = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.armed and request.method == self.method and request.url.path.endswith(self.path_suffix):
            self.armed = False
            self.reached.set()
            await self.release.wait()
        return self.server(request)


class Stack:
    """Gateway, session manager and habit controller wired to one fake server"""

    def __init__(self, store, server: FakeHabitServer, today=None, handler=None):
        self.store = store
        self.server = server
        self.gateway = GatewayClient(BASE_URL, store, transport=httpx.MockTransport(handler or server))
        self.sessions = AuthSessionManager(self.gateway, store)
        self.habits = HabitSyncController(
            self.gateway,
            self.sessions,
            refresh_attempts=2,
            today=today or (lambda: date(2026, 3, 14)),
        )


@pytest.fixture
def fernet_key() -> bytes:
    return Fernet.generate_key()


@pytest.fixture
def store(tmp_path, fernet_key):
    return EncryptedFileCredentialStore(tmp_path / "credentials.json", fernet_key)


@pytest.fixture
def server():
    srv = FakeHabitServer()
    srv.add_user("a@b.com", "Secret1", name="Alice")
    return srv


@pytest.fixture
def make_stack(store, server):
    """Build the component stack inside the test's event loop."""

    def _make(today=None, handler=None) -> Stack:
        return Stack(store, server, today=today, handler=handler)

    return _make


@pytest.fixture
def gate(server):
    """Factory for a Gate on the shared fake server."""

    def _gate(method: str, path_suffix: str, armed: bool = True) -> Gate:
        return Gate(server, method, path_suffix, armed=armed)

    return _gate
