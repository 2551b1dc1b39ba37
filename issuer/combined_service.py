"""
Verifier and issuer in one process, sharing a single VerificationLedger.

Issuance can only mirror verified predicates, or insist on a verified
session (REQUIRE_VERIFIED_SESSION), when it sees the ledger the verifier
writes to. The issuer endpoints are mounted under /issuer, so ISSUER_URL
should end in /issuer when this app is deployed.
"""
from __future__ import annotations

from typing import Optional

from Crypto.PublicKey import ECC
from flask import Flask

from core.config import Settings, get_settings
from core.log import configure_logging
from issuer.issuer_service import build_machine, issuer_blueprint
from verifier import verifier_service
from verifier.ledger import VerificationLedger
from verifier.verify_presentation import PresentationVerifier

ISSUER_PREFIX = "/issuer"

def create_app(
    settings: Optional[Settings] = None,
    verifier: Optional[PresentationVerifier] = None,
    issuer_key: Optional[ECC.EccKey] = None,
) -> Flask:
    settings = settings or get_settings()
    if verifier is None:
        ledger = VerificationLedger(ttl=settings.verification_ttl)
    elif verifier.ledger is None:
        raise ValueError("verifier must carry the ledger the issuer reads from")
    else:
        ledger = verifier.ledger

    app = verifier_service.create_app(settings, verifier=verifier, ledger=ledger)
    machine = build_machine(settings, issuer_key=issuer_key, ledger=ledger)
    app.extensions["issuance_machine"] = machine
    app.extensions["verification_ledger"] = ledger
    app.register_blueprint(issuer_blueprint(settings, machine), url_prefix=ISSUER_PREFIX)
    return app

if __name__ == '__main__':
    settings = get_settings()
    configure_logging(settings.log_level)
    create_app(settings).run(host='127.0.0.1', port=settings.verifier_port)
