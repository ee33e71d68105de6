# ==============================================================================
# commission_admin/main/sessions.py
# ------------------------------------------------------------------------------
# Keeps one matrix edit session per product for the lifetime of the app
# process. Request threads share these sessions; each session guards its own
# mutating operations, and the registry lock keeps two threads from opening
# the same product twice.
# ==============================================================================

import asyncio
import threading
from flask import current_app

from commission_admin.matrix import MatrixEditSession, SQLCommissionStore

_registry_lock = threading.Lock()


def run_async(coro):
    """Drives one core coroutine to completion from a synchronous view."""
    return asyncio.run(coro)


def _registry():
    return current_app.extensions.setdefault('matrix_sessions', {})


def get_edit_session(product_id):
    """Returns the product's session, loading it from the store on first use."""
    with _registry_lock:
        sessions = _registry()
        session = sessions.get(product_id)
        if session is None:
            session = MatrixEditSession(SQLCommissionStore(), product_id)
            run_async(session.load())
            sessions[product_id] = session
            current_app.logger.info(f"Opened matrix edit session for product '{product_id}'")
    return session


def close_edit_session(product_id):
    with _registry_lock:
        closed = _registry().pop(product_id, None) is not None
    if closed:
        current_app.logger.info(f"Closed matrix edit session for product '{product_id}'")
