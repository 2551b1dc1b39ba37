"""
Verifier HTTP service - OID4VP endpoint for the DC-API handover.
Thin layer over PresentationVerifier.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from Crypto.PublicKey import ECC
from flask import Flask, jsonify, request

from core.config import Settings, get_settings
from core.errors import MalformedInput
from core.log import configure_logging
from crypto.jwe import DEFAULT_ALG
from crypto.keys import load_or_create_keypair, public_jwk
from verifier.ledger import VerificationLedger
from verifier.verify_presentation import PresentationVerifier

FAILURE_STATUS = {"RemoteUnavailable": 503, "InternalError": 500}

def create_app(
    settings: Optional[Settings] = None,
    verifier: Optional[PresentationVerifier] = None,
    reader_key: Optional[ECC.EccKey] = None,
    ledger: Optional[VerificationLedger] = None,
) -> Flask:
    settings = settings or get_settings()
    if reader_key is None:
        reader_key = verifier.reader_key if verifier else load_or_create_keypair(
            "reader", settings.key_dir, settings.reader_private_key_pem
        )
    if verifier is None:
        verifier = PresentationVerifier.from_settings(settings, reader_key, ledger=ledger)

    app = Flask(__name__)
    app.extensions["presentation_verifier"] = verifier

    @app.post("/api/verify")
    async def verify():
        """
        Request JSON:
        {
            "response": "<compact JWE from the Digital Credentials API>"
        }
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify(MalformedInput("request body must be a JSON object").to_dict()), 400
        jwe = data.get("response")
        if not isinstance(jwe, str) or not jwe:
            return jsonify(MalformedInput("Missing response (JWE) in request body").to_dict()), 400

        result = await verifier.verify(jwe)
        if not result.valid:
            body = {"ok": False, "kind": result.kind, "error": result.error, "detail": result.reason}
            return jsonify(body), FAILURE_STATUS.get(result.kind, 400)

        # predicate outcomes only, never raw attributes
        return jsonify({
            "ok": True,
            "predicates": result.predicates,
            "sessionId": result.session_id,
            "mock": result.mock,
            "trustStale": result.trust_stale,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }), 200

    @app.get("/api/reader-jwks")
    def reader_jwks():
        return jsonify({"keys": [public_jwk(reader_key, use="enc", alg=DEFAULT_ALG)]})

    @app.get("/api/trust-policy")
    def trust_policy():
        if verifier.trust_store is None:
            return jsonify({"acceptedJurisdictions": [], "policyType": "none"})
        return jsonify(verifier.trust_store.trust_policy())

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "service": "zk-mdl-kit-verifier",
            "mode": verifier.mode.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }, 200

    return app

if __name__ == '__main__':
    settings = get_settings()
    configure_logging(settings.log_level)
    create_app(settings).run(host='127.0.0.1', port=settings.verifier_port)
