"""Observability helpers (Sentry init & common scrubbing).

Centralises Sentry initialisation for every process embedding the core
so configuration does not drift.  Initialisation is a no-op when no DSN
is configured, and the helpers below never raise.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from receiptscanner.core.config import settings

logger = logging.getLogger(__name__)

_initialised = False


def _before_send(event: Dict[str, Any], hint: Dict[str, Any] | None = None):
	"""Scrub obvious PII before sending to Sentry.

	- Drop raw receipt text from extra context
	- Collapse user objects to the tenant id
	"""
	try:
		extra = event.get("extra") or {}
		extra.pop("raw_text", None)
		event["extra"] = extra
		user = event.get("user")
		if isinstance(user, dict) and "id" in user:
			event["user"] = {"id": user["id"]}
	except Exception:  # best effort
		pass
	return event


def init_sentry(service: str) -> bool:
	"""Set up the Sentry client for ``service`` unless it is already running.

	SQLAlchemy statements are recorded as breadcrumbs/spans through the
	SQLAlchemy integration.  Returns False when no DSN is configured.
	"""
	global _initialised
	if not settings.SENTRY_DSN:
		return False
	if _initialised:
		return True
	sentry_sdk.init(
		dsn=settings.SENTRY_DSN,
		environment=settings.ENVIRONMENT,
		release=settings.SENTRY_RELEASE or None,
		integrations=[SqlalchemyIntegration()],
		traces_sample_rate=float(settings.SENTRY_TRACES_SAMPLE_RATE or 0),
		send_default_pii=False,
		before_send=_before_send,
	)
	sentry_sdk.set_tag("component", settings.PROJECT_NAME)
	sentry_sdk.set_tag("service", service)
	_initialised = True
	logger.info("[sentry] initialised service=%s env=%s", service, settings.ENVIRONMENT)
	return True


def sentry_set_tags(tags: Dict[str, Any]) -> None:
	"""Best-effort: set tags on the current Sentry scope (strings only)."""
	if not settings.SENTRY_DSN:
		return
	try:
		scope = sentry_sdk.get_current_scope()
		for k, v in (tags or {}).items():
			# Avoid PII; coerce to short strings
			scope.set_tag(str(k), str(v)[:128] if v is not None else "")
	except Exception:
		return


def sentry_breadcrumb(category: str, message: str, level: str = "info", data: Optional[Dict[str, Any]] = None) -> None:
	"""Best-effort: add a breadcrumb for important lifecycle steps."""
	if not settings.SENTRY_DSN:
		return
	try:
		sentry_sdk.add_breadcrumb(
			category=category,
			message=message,
			level=level,
			data=data or {},
		)
	except Exception:
		return


def sentry_capture(exc: BaseException) -> None:
	"""Best-effort: report a handled exception."""
	if not settings.SENTRY_DSN:
		return
	try:
		sentry_sdk.capture_exception(exc)
	except Exception:
		return


__all__ = ["init_sentry", "sentry_set_tags", "sentry_breadcrumb", "sentry_capture"]
