# -*- coding: utf-8 -*-
"""NousGuard package.

Modules:
    errors:    Typed errors (KeyUnavailable, EncryptionFailed, DecryptionFailed, ...).
    crypto:    Field cipher, key handles, KDF/AEAD helpers.
    keystore:  Secure key store interface + memory and vault backends.
    custodian: Get-or-create lifecycle of the journal key.
    db:        SQLite schema + async data access.
    logic:     Journal repository that composes db + crypto.
    bootstrap: Two-phase application startup.
    config:    JSON config + logging setup.
    ui:        Textual-based UI (screens, modals, app).
    theme.css: Textual CSS theme (loaded by ui.py).
"""

__all__ = ["errors", "crypto", "keystore", "custodian", "db", "logic", "bootstrap", "config", "ui"]
