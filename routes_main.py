#!/usr/bin/env python3
"""routes_main.py

HTTP routes served next to the Socket.IO relay: banner, optional health check,
currency conversion, and an optional dev-only token endpoint.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone

from flask import jsonify, request
from flask_jwt_extended import create_access_token

from constants import APP_VERSION, DEFAULT_BASE_CURRENCY, DEFAULT_SYMBOLS
from currency import RatesUnavailable


def register_main_routes(app, settings, socketio, ctx):

    @app.route("/")
    def index():
        return f"{settings.get('server_name') or 'MarketMatch Relay'} {APP_VERSION} is running"

    # Health check is optional and should be safe for unauthenticated probes.
    if settings.get("enable_health_check_endpoint", False):
        endpoint = settings.get("health_check_endpoint") or "/health"

        @app.route(endpoint, methods=["GET"])
        def health_check():
            # Minimal health payload. Avoid leaking config.
            return jsonify(
                {
                    "status": "ok",
                    "online_users": len(ctx.presence.online_users()),
                    "pending_replies": len(ctx.scheduler.pending()),
                    "time": datetime.now(timezone.utc).isoformat(),
                }
            )

    # ------------------------------------------------------------------
    # Currency
    # ------------------------------------------------------------------
    def _currency_arg(name: str, default: str) -> str:
        return (request.args.get(name) or default).strip().upper()[:8]

    @app.route("/currency/api/convert", methods=["GET"])
    def api_currency_convert():
        try:
            amount = float(request.args.get("amount", ""))
        except (TypeError, ValueError):
            return jsonify({"success": False, "error": "amount must be a number"}), 400
        if not math.isfinite(amount):
            return jsonify({"success": False, "error": "amount must be a number"}), 400

        from_ = _currency_arg("from", DEFAULT_BASE_CURRENCY)
        to = _currency_arg("to", ctx.preferences.currency)
        converted = ctx.rates.convert(amount, from_, to)
        return jsonify({"success": True, "amount": amount, "from": from_, "to": to, "converted": converted})

    @app.route("/currency/api/rates", methods=["GET"])
    def api_currency_rates():
        base = _currency_arg("base", DEFAULT_BASE_CURRENCY)
        raw_symbols = request.args.get("symbols") or ",".join(DEFAULT_SYMBOLS)
        symbols = [s.strip().upper() for s in raw_symbols.split(",") if s.strip()][:20]
        try:
            rates = ctx.rates.get_cached_rates(base, symbols)
        except RatesUnavailable as e:
            logging.warning("Rates lookup failed: %s", e)
            return jsonify({"success": False, "error": "Exchange rates unavailable"}), 503
        return jsonify({"success": True, "base": base, "rates": rates})

    # ------------------------------------------------------------------
    # Dev token (support namespace testing). Never enable in production.
    # ------------------------------------------------------------------
    if settings.get("enable_dev_token_endpoint", False):
        logging.warning("Dev token endpoint is enabled: /auth/api/dev-token")

        @app.route("/auth/api/dev-token", methods=["POST"])
        def api_dev_token():
            data = request.get_json(silent=True) or {}
            user_id = str(data.get("userId") or "").strip()
            if not user_id:
                return jsonify({"success": False, "error": "userId is required"}), 400
            claims = {"email": data["email"]} if data.get("email") else None
            token = create_access_token(identity=user_id, additional_claims=claims)
            return jsonify({"success": True, "accessToken": token})
