# paygate/x402/routes.py
"""
Loading of route and facilitator configuration.

Routes map an exact request path to one payment option or a list of them:

    {
      "/api/premium": {"price": "0.1", "chainId": 196, "token": "0x...",
                       "usdcName": "USD Coin", "usdcVersion": "2",
                       "network": "xlayer"}
    }

Facilitators are either one binding used for every network:

    {"url": "https://facilitator.example", "variant": "standard"}

or a mapping keyed by network:

    {"xlayer": {"url": "https://web3.okx.com", "variant": "signed",
                "credentials": {"apiKey": "...", "secretKey": "...", "passphrase": "..."}}}

Everything here runs once at startup; invalid input raises ConfigurationError.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple, Union

from pydantic import ValidationError

from paygate.x402.errors import ConfigurationError
from paygate.x402.types import FacilitatorBinding, FacilitatorCredentials, PaymentOption

logger = logging.getLogger(__name__)


def _to_option(value: Any, path: str) -> PaymentOption:
    if isinstance(value, PaymentOption):
        return value
    try:
        return PaymentOption.model_validate(value)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid payment option for route {path}: {e}")


def normalize_routes(routes: Mapping[str, Any]) -> Dict[str, Tuple[PaymentOption, ...]]:
    """
    Normalize route config to path -> tuple of options, in declaration order.

    Raises:
        ConfigurationError: On invalid options, an empty option list, or a
            network offered twice for the same route.
    """
    normalized: Dict[str, Tuple[PaymentOption, ...]] = {}
    for path, value in (routes or {}).items():
        values = value if isinstance(value, (list, tuple)) else [value]
        options = tuple(_to_option(item, path) for item in values)
        if not options:
            raise ConfigurationError(f"Route {path} has no payment options")

        networks = [option.network for option in options]
        duplicates = sorted({network for network in networks if networks.count(network) > 1})
        if duplicates:
            raise ConfigurationError(
                f"Route {path} offers network(s) {', '.join(duplicates)} more than once"
            )
        normalized[path] = options
    return normalized


def load_route_config(data: Mapping[str, Any]) -> Dict[str, Tuple[PaymentOption, ...]]:
    """Parse a route mapping loaded from JSON."""
    if not isinstance(data, Mapping):
        raise ConfigurationError("Route config must be a JSON object keyed by path")
    return normalize_routes(data)


def _to_binding(value: Any, label: str) -> FacilitatorBinding:
    if isinstance(value, FacilitatorBinding):
        return value
    try:
        return FacilitatorBinding.model_validate(value)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid facilitator config for {label}: {e}")


def load_facilitator_bindings(
    data: Any,
) -> Union[FacilitatorBinding, Dict[str, FacilitatorBinding]]:
    """
    Parse facilitator config: a single binding (has 'url') or a per-network map.
    """
    if isinstance(data, FacilitatorBinding):
        return data
    if not isinstance(data, Mapping):
        raise ConfigurationError("Facilitator config must be a JSON object")
    if "url" in data:
        return _to_binding(data, "all networks")
    return {network: _to_binding(value, network) for network, value in data.items()}


def _read_json(path: str) -> Any:
    try:
        with open(Path(path), "r") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}")


def routes_from_settings(settings) -> Dict[str, Tuple[PaymentOption, ...]]:
    """Load the route table named by X402_ROUTES_FILE; empty when unset."""
    if not settings.X402_ROUTES_FILE:
        logger.warning("X402_ROUTES_FILE not configured, no routes are payment protected")
        return {}
    return load_route_config(_read_json(settings.X402_ROUTES_FILE))


def bindings_from_settings(settings) -> Union[FacilitatorBinding, Dict[str, FacilitatorBinding]]:
    """
    Build facilitator bindings from settings.

    X402_FACILITATORS_FILE wins over the single X402_FACILITATOR_URL binding.
    """
    if settings.X402_FACILITATORS_FILE:
        return load_facilitator_bindings(_read_json(settings.X402_FACILITATORS_FILE))

    if not settings.X402_FACILITATOR_URL:
        raise ConfigurationError("X402_FACILITATOR_URL or X402_FACILITATORS_FILE must be configured")

    credentials = None
    if settings.X402_FACILITATOR_TYPE == "signed":
        if not (settings.OKX_API_KEY and settings.OKX_SECRET_KEY and settings.OKX_PASSPHRASE):
            raise ConfigurationError(
                "Signed facilitator requires OKX_API_KEY, OKX_SECRET_KEY and OKX_PASSPHRASE"
            )
        credentials = FacilitatorCredentials(
            api_key=settings.OKX_API_KEY,
            secret_key=settings.OKX_SECRET_KEY,
            passphrase=settings.OKX_PASSPHRASE,
            project=settings.OKX_PROJECT_ID,
        )

    return _to_binding(
        {"url": settings.X402_FACILITATOR_URL, "variant": settings.X402_FACILITATOR_TYPE, "credentials": credentials},
        "all networks",
    )
