"""
Development trust list. Only served when no trust list URL is configured
and the verifier runs with verification_mode=allow_mock.
"""

DEV_TRUST_LIST = {
    "version": "1.0-dev",
    "jurisdictions": [
        {
            "code": "CA",
            "name": "California",
            "issuer": "CA-DMV",
            "certificates": [
                {
                    "kid": "ca-dmv-2024-01",
                    "type": "IACA",
                    "algorithm": "ES256",
                    "publicKey": "dev-public-key-ca",
                    "validFrom": "2024-01-01T00:00:00Z",
                    "validUntil": "2030-12-31T23:59:59Z",
                }
            ],
        },
        {
            "code": "NY",
            "name": "New York",
            "issuer": "NY-DMV",
            "certificates": [
                {
                    "kid": "ny-dmv-2024-01",
                    "type": "IACA",
                    "algorithm": "ES256",
                    "publicKey": "dev-public-key-ny",
                    "validFrom": "2024-01-01T00:00:00Z",
                    "validUntil": "2030-12-31T23:59:59Z",
                }
            ],
        },
        {
            "code": "FL",
            "name": "Florida",
            "issuer": "FL-DMV",
            "certificates": [
                {
                    "kid": "fl-dmv-2024-01",
                    "type": "IACA",
                    "algorithm": "ES256",
                    "publicKey": "dev-public-key-fl",
                    "validFrom": "2024-01-01T00:00:00Z",
                    "validUntil": "2030-12-31T23:59:59Z",
                }
            ],
        },
    ],
}
