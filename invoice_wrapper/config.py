"""Loading of the wrapper configuration from config.ini and the environment.

The INI file looks like::

    [wrapper]
    fee_percent = 0.5
    fee_fixed_msat = 1000
    create_timeout_seconds = 2
    accept_timeout_seconds =

    [lnd]
    rest_host = localhost:8080
    tlscertpath = ~/.lnd/tls.cert
    macaroonpath = ~/.lnd/data/chain/bitcoin/mainnet/invoice.macaroon

``FEE_PERCENT``, ``FEE_FIXED``, ``LND_HOSTNAME``, ``LND_TLS_CERT`` and
``LND_MACAROON`` override the file when set. Without ``--config`` the file is read
from the current working directory.
"""

import configparser
import hashlib
import logging
import math
import os
import tempfile
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigInvalid
from .models import FeeSchedule

logger = logging.getLogger(__name__)

MIN_FEE_FIXED_MSAT = 1000
DEFAULT_CREATE_TIMEOUT_SECONDS = 2.0

CONFIG_FILE_NAME = "config.ini"
LOG_FILE_NAME = os.path.join("logs", "invoice-wrapper.log")


def default_config_location():
    """config.ini in the directory the command is run from."""
    return os.path.join(os.getcwd(), CONFIG_FILE_NAME)


def default_log_location():
    return os.path.join(os.getcwd(), LOG_FILE_NAME)


@dataclass(frozen=True)
class WrapperConfig:
    fee: FeeSchedule
    rest_host: str
    tls_cert_path: str
    macaroon_hex: str
    create_timeout_seconds: float = DEFAULT_CREATE_TIMEOUT_SECONDS
    accept_timeout_seconds: Optional[float] = None


def _pick(environ, env_key, config, section, option):
    value = environ.get(env_key)
    if value:
        return value
    value = config.get(section, option, fallback=None)
    if value is None or not value.strip():
        return None
    return value.strip()


def _parse_float(raw, key, default=None, positive=False):
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigInvalid(f'Invalid config ("{key}"): Number expected')
    if not math.isfinite(value) or value < 0:
        raise ConfigInvalid(f'Invalid config ("{key}"): Non-negative number expected')
    # requests refuses a timeout of 0
    if positive and value == 0:
        raise ConfigInvalid(f'Invalid config ("{key}"): Positive number expected')
    return value


def _parse_fee_fixed(raw):
    if raw is None:
        raise ConfigInvalid('Missing required config: "fee_fixed_msat"')
    try:
        value = int(raw)
    except ValueError:
        raise ConfigInvalid('Invalid config ("fee_fixed_msat"): Integer expected')
    if value < MIN_FEE_FIXED_MSAT:
        raise ConfigInvalid(
            f'Invalid config ("fee_fixed_msat"): Minimum value is {MIN_FEE_FIXED_MSAT} msat'
        )
    return value


def _resolve_tls_cert(raw):
    """Returns a path usable as ``verify=`` for requests.

    The certificate may be given inline as PEM with literal ``\\n`` sequences,
    in which case it is written to a file in the temp directory named after
    the certificate's hash, so repeated runs reuse the same file.
    """
    if "-----BEGIN" in raw:
        pem = raw.replace("\\n", "\n")
        digest = hashlib.sha256(pem.encode("utf-8")).hexdigest()[:16]
        path = os.path.join(tempfile.gettempdir(), f"lnd-tls-{digest}.cert")
        with open(path, "w") as f:
            f.write(pem)
        logger.debug(f"Inline TLS certificate written to {path}")
        return path
    path = os.path.expanduser(raw)
    if not os.path.isfile(path):
        raise ConfigInvalid(f'Invalid config ("tlscertpath"): File not found at {path}')
    return path


def _resolve_macaroon(hex_value, path_value):
    if hex_value:
        try:
            bytes.fromhex(hex_value)
        except ValueError:
            raise ConfigInvalid('Invalid config ("macaroon"): Hex string expected')
        return hex_value.lower()
    if path_value:
        path = os.path.expanduser(path_value)
        if not os.path.isfile(path):
            raise ConfigInvalid(f'Invalid config ("macaroonpath"): File not found at {path}')
        with open(path, "rb") as f:
            return f.read().hex()
    raise ConfigInvalid('Missing required config: "macaroon" or "macaroonpath"')


def load_config(config_file_path=None, environ=None) -> WrapperConfig:
    """Builds the immutable wrapper configuration.

    Raises ConfigInvalid naming the first missing or malformed value.
    """
    if config_file_path is None:
        config_file_path = default_config_location()
    if environ is None:
        environ = os.environ

    config = configparser.ConfigParser()
    try:
        read_files = config.read(config_file_path)
    except configparser.Error as e:
        raise ConfigInvalid(f"Error parsing {config_file_path}: {e}")
    if not read_files:
        logger.info(f"No config file at {config_file_path}, using environment only")

    fee_percent = _parse_float(
        _pick(environ, "FEE_PERCENT", config, "wrapper", "fee_percent"),
        "fee_percent",
        default=0.0,
    )
    fee_fixed = _parse_fee_fixed(
        _pick(environ, "FEE_FIXED", config, "wrapper", "fee_fixed_msat")
    )

    rest_host = _pick(environ, "LND_HOSTNAME", config, "lnd", "rest_host")
    if not rest_host:
        raise ConfigInvalid('Missing required config: "rest_host"')

    tls_cert = _pick(environ, "LND_TLS_CERT", config, "lnd", "tlscertpath")
    if not tls_cert:
        raise ConfigInvalid('Missing required config: "tlscertpath"')

    macaroon_hex = _resolve_macaroon(
        _pick(environ, "LND_MACAROON", config, "lnd", "macaroon"),
        config.get("lnd", "macaroonpath", fallback=None),
    )

    create_timeout = _parse_float(
        config.get("wrapper", "create_timeout_seconds", fallback=None) or None,
        "create_timeout_seconds",
        default=DEFAULT_CREATE_TIMEOUT_SECONDS,
        positive=True,
    )
    accept_timeout = _parse_float(
        config.get("wrapper", "accept_timeout_seconds", fallback=None) or None,
        "accept_timeout_seconds",
        positive=True,
    )

    return WrapperConfig(
        fee=FeeSchedule(percent=fee_percent, fixed_msat=fee_fixed),
        rest_host=rest_host,
        tls_cert_path=_resolve_tls_cert(tls_cert),
        macaroon_hex=macaroon_hex,
        create_timeout_seconds=create_timeout,
        accept_timeout_seconds=accept_timeout,
    )
