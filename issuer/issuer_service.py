"""
Issuer HTTP service - OID4VCI endpoints for short-lived derived SD-JWT VCs.

The routes live on a blueprint so the same endpoints can be mounted on their
own app or beside the verifier (see issuer.combined_service).
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from Crypto.PublicKey import ECC
from flask import Blueprint, Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from core.config import Settings, get_settings
from core.errors import InvalidRequest, MdlKitError
from core.log import configure_logging
from crypto.keys import load_or_create_keypair
from issuer.issue import DerivedCredentialIssuer, issuer_metadata
from issuer.sessions import IssuanceSessionMachine, SessionStore
from verifier.ledger import VerificationLedger

logger = logging.getLogger(__name__)

def build_machine(
    settings: Settings,
    issuer_key: Optional[ECC.EccKey] = None,
    ledger: Optional[VerificationLedger] = None,
) -> IssuanceSessionMachine:
    if issuer_key is None:
        issuer_key = load_or_create_keypair("issuer", settings.key_dir, settings.issuer_private_key_pem)
    issuer = DerivedCredentialIssuer(issuer_key, settings.issuer_url, ttl=settings.derived_vc_ttl)
    return IssuanceSessionMachine(
        issuer,
        store=SessionStore(ttl=settings.session_ttl),
        ledger=ledger,
        require_verified_session=settings.require_verified_session,
    )

def _json_body(allow_form: bool = False) -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None and allow_form:
        data = request.form.to_dict()
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidRequest("request body must be a JSON object")
    return data

def issuer_blueprint(settings: Settings, machine: IssuanceSessionMachine) -> Blueprint:
    bp = Blueprint("issuer", __name__)

    @bp.errorhandler(MdlKitError)
    def oauth_error(exc: MdlKitError):
        return jsonify({"error": exc.oauth_error, "error_description": exc.detail}), exc.status

    @bp.errorhandler(Exception)
    def server_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        logger.exception("Issuer request failed")
        return jsonify({"error": "server_error", "error_description": "internal error"}), 500

    @bp.post('/authorize')
    def authorize():
        """
        Request JSON:
        {
            "verificationSessionId": "<sessionId from /api/verify>",
            "holderPublicKey": {JWK}
        }
        """
        data = _json_body()
        return jsonify(machine.authorize(data.get("verificationSessionId"), data.get("holderPublicKey")))

    @bp.post('/token')
    def token():
        data = _json_body(allow_form=True)
        return jsonify(machine.token(data.get("code"), data.get("grant_type")))

    @bp.post('/credential')
    def credential():
        data = _json_body()
        return jsonify(machine.credential(
            request.headers.get("Authorization"),
            credential_format=data.get("format"),
            proof=data.get("proof"),
        ))

    @bp.get('/.well-known/openid-credential-issuer')
    def metadata():
        return jsonify(issuer_metadata(settings.issuer_url, machine.issuer.public_jwk()))

    return bp

def create_app(
    settings: Optional[Settings] = None,
    machine: Optional[IssuanceSessionMachine] = None,
    ledger: Optional[VerificationLedger] = None,
) -> Flask:
    settings = settings or get_settings()
    machine = machine or build_machine(settings, ledger=ledger)

    app = Flask(__name__)
    app.extensions["issuance_machine"] = machine
    app.register_blueprint(issuer_blueprint(settings, machine))

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "service": "zk-mdl-kit-issuer",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }, 200

    return app

if __name__ == '__main__':
    settings = get_settings()
    configure_logging(settings.log_level)
    if settings.require_verified_session:
        # the ledger lives in the verifier process
        raise SystemExit(
            "REQUIRE_VERIFIED_SESSION needs the verification ledger; "
            "run python -m issuer.combined_service instead"
        )
    create_app(settings).run(host='127.0.0.1', port=settings.issuer_port)
