"""Mock shipping portal application for exercising the auth helpers.

Serves both halves of the application under test from one host:
- POST /api/auth/login: validate credentials, issue a server-side session
- GET  /api/health: liveness probe
- GET  /login/, /unauthorized/: the gate pages
- GET  /staff/, /portal/, /driver/: portals behind a session route guard

Behaviour switches (app.config):
- LOGIN_TOKEN_MODE: "cookie", "body", "both" or "none" - where the login
  response carries the session token
- LOGIN_FAILURE_STATUS: when set, every login answers with this status
- TRUST_SYNTHETIC_TOKENS: when true the guard also admits unexpired
  synthetic tokens; otherwise only server-issued sessions pass
"""
from __future__ import annotations

import secrets
import time
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, make_response, redirect, request

from portal_tests.config import ROLE_PROFILES, Role
from portal_tests.session_tokens import decode_synthetic_token

SESSIONS: Dict[str, Dict[str, Any]] = {}  # session_id -> {role, email, created_at}

SESSION_COOKIE = "session"
SESSION_TIMEOUT = 24 * 60 * 60

# Portal path -> roles admitted by its guard.
PORTAL_ACCESS: Dict[str, frozenset] = {
    path: frozenset(p.role for p in ROLE_PROFILES.values() if p.portal_path == path)
    for path in {p.portal_path for p in ROLE_PROFILES.values()}
}

_PAGE = "<!doctype html><html><head><title>Shipnorth</title></head><body><h1>{title}</h1>{body}</body></html>"


def _html(title: str, body: str = "", status: int = 200):
    response = make_response(_PAGE.format(title=title, body=body), status)
    response.headers["Content-Type"] = "text/html; charset=utf-8"
    return response


def create_mock_portal_app(
    token_mode: str = "cookie",
    failure_status: Optional[int] = None,
    trust_synthetic_tokens: bool = False,
) -> Flask:
    """Create and configure the mock portal Flask app."""
    if token_mode not in {"cookie", "body", "both", "none"}:
        raise ValueError(f"Unknown token mode: {token_mode}")

    app = Flask(__name__)
    app.config['TESTING'] = True
    app.config['LOGIN_TOKEN_MODE'] = token_mode
    app.config['LOGIN_FAILURE_STATUS'] = failure_status
    app.config['TRUST_SYNTHETIC_TOKENS'] = trust_synthetic_tokens

    def _session_role(token: Optional[str]) -> Optional[Role]:
        """Role behind a session cookie value, if the guard accepts it."""
        if not token:
            return None

        session = SESSIONS.get(token)
        if session is not None:
            if time.time() - session['created_at'] > SESSION_TIMEOUT:
                del SESSIONS[token]
                return None
            return session['role']

        if not app.config['TRUST_SYNTHETIC_TOKENS']:
            return None
        try:
            claims = decode_synthetic_token(token)
        except ValueError:
            return None
        if claims.get('exp', 0) < time.time():
            return None
        try:
            return Role(claims.get('role'))
        except ValueError:
            return None

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({"status": "ok", "sessions": len(SESSIONS)}), 200

    @app.route('/api/auth/login', methods=['POST'])
    def login():
        failure_status = app.config['LOGIN_FAILURE_STATUS']
        if failure_status:
            return jsonify({"error": "Login unavailable"}), failure_status

        data = request.get_json(silent=True) or {}
        email = data.get('email')
        password = data.get('password')
        if not email or not password:
            return jsonify({"error": "Email and password are required"}), 400

        profile = next((p for p in ROLE_PROFILES.values() if p.email == email), None)
        if profile is None or profile.password != password:
            return jsonify({"error": "Invalid credentials"}), 401

        session_id = secrets.token_urlsafe(24)
        SESSIONS[session_id] = {
            'role': profile.role,
            'email': profile.email,
            'created_at': time.time(),
        }

        mode = app.config['LOGIN_TOKEN_MODE']
        body: Dict[str, Any] = {
            "user": {
                "id": f"{profile.role.value}-1",
                "email": profile.email,
                "role": profile.role.value,
                "roles": [profile.role.value],
                "firstName": profile.first_name,
                "lastName": profile.last_name,
                "defaultPortal": profile.portal_path.strip('/'),
            },
        }
        if mode in {"body", "both"}:
            body["token"] = session_id
            body["accessToken"] = session_id

        response = make_response(jsonify(body), 200)
        if mode in {"cookie", "both"}:
            response.set_cookie(SESSION_COOKIE, session_id, path='/', httponly=True, samesite='Lax')
        return response

    @app.route('/login/', methods=['GET'])
    def login_page():
        return _html(
            "Welcome back",
            '<form method="post"><input type="email" name="email">'
            '<input type="password" name="password">'
            '<button type="submit">Sign In</button></form>',
        )

    @app.route('/unauthorized/', methods=['GET'])
    def unauthorized_page():
        return _html("Unauthorized", status=403)

    def _guarded_portal(portal_path: str, title: str, nav: Tuple[str, ...]):
        role = _session_role(request.cookies.get(SESSION_COOKIE))
        if role is None:
            return redirect(f"/login/?next={portal_path}")
        if role not in PORTAL_ACCESS[portal_path]:
            return redirect("/unauthorized/")
        links = "".join(f'<a href="#">{item}</a> ' for item in nav)
        return _html(title, f'<nav>{links}</nav><p data-role="{role.value}">Signed in as {role.value}</p>')

    @app.route('/staff/', methods=['GET'])
    def staff_portal():
        return _guarded_portal('/staff/', "Staff Dashboard", ("Packages", "Customers", "Loads"))

    @app.route('/portal/', methods=['GET'])
    def customer_portal():
        return _guarded_portal('/portal/', "Your Packages", ("Track Package", "Account"))

    @app.route('/driver/', methods=['GET'])
    def driver_portal():
        return _guarded_portal('/driver/', "My Loads", ("Routes", "Deliveries"))

    return app


def reset_mock_state():
    """Drop every server-side session."""
    SESSIONS.clear()


if __name__ == '__main__':
    app = create_mock_portal_app(token_mode="both")
    print("Mock portal running on http://localhost:8849")
    for profile in ROLE_PROFILES.values():
        print(f"  {profile.role.value:<9} {profile.email} / {profile.password} -> {profile.portal_path}")
    app.run(host='0.0.0.0', port=8849, debug=True)
