# src/dispatch_core/transport/session_manager.py
"""
Per-thread requests.Session pool.

requests.Session is not safe to share between threads, so every thread
that dispatches gets its own lazily created session. All sessions are
tracked so the transport can close them in one call.
"""
import logging
import threading
import weakref
from typing import Callable, Set

import requests
from requests.adapters import HTTPAdapter

from ..core.config import ConnectionPoolConfig

logger = logging.getLogger(__name__)


def pooled_session_factory(pool: ConnectionPoolConfig) -> Callable[[], requests.Session]:
    """
    Factory of sessions with a mounted connection pool.

    Retries are disabled on the adapter: the dispatcher owns the retry loop.
    """

    def create() -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(
            pool_connections=pool.pool_connections,
            pool_maxsize=pool.pool_maxsize,
            pool_block=pool.pool_block,
            max_retries=0,
        )
        session.mount('http://', adapter)
        session.mount('https://', adapter)
        session.max_redirects = pool.max_redirects
        # Подписанные запросы не должны подхватывать ~/.netrc или прокси-авторизацию
        session.trust_env = False
        return session

    return create


class ThreadSafeSessionManager:
    """
    Thread-local session holder.

    Example:
        >>> manager = ThreadSafeSessionManager(pooled_session_factory(ConnectionPoolConfig()))
        >>> session = manager.get_session()
        >>> manager.close_all()
    """

    def __init__(self, session_factory: Callable[[], requests.Session]):
        self._session_factory = session_factory
        self._local = threading.local()
        self._all_sessions: Set[weakref.ref] = set()
        self._sessions_lock = threading.Lock()

    def get_session(self) -> requests.Session:
        session = getattr(self._local, 'session', None)
        if session is None:
            session = self._session_factory()
            self._local.session = session
            with self._sessions_lock:
                self._all_sessions.add(weakref.ref(session, self._forget))
        return session

    def _forget(self, ref: weakref.ref) -> None:
        with self._sessions_lock:
            self._all_sessions.discard(ref)

    def close_all(self) -> None:
        """Close sessions of every thread. Safe to call repeatedly."""
        self._local.session = None
        with self._sessions_lock:
            refs = list(self._all_sessions)
            self._all_sessions.clear()

        for ref in refs:
            session = ref()
            if session is not None:
                try:
                    session.close()
                except OSError as e:
                    logger.debug("Failed to close session cleanly: %s", e)

    def get_active_sessions_count(self) -> int:
        with self._sessions_lock:
            return sum(1 for ref in self._all_sessions if ref() is not None)
