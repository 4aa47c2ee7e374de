"""
Thin client for the LND REST API.

Only the calls needed to wrap an invoice are implemented. Byte fields go to
LND as base64url, but LND uses a slightly non-standard flavour of it: "+"
becomes "-" and "/" becomes "_", while the "=" padding is kept.
"""

import base64
import binascii
import json
import logging
from contextlib import contextmanager

import requests

from .errors import DecodeFailed, LndApiError, LndTimeoutError
from .models import InvoiceState, OriginalInvoice, PaymentOutcome, WrappedInvoice

logger = logging.getLogger(__name__)

# gRPC status code LND returns when an invoice does not exist
GRPC_NOT_FOUND = 5


def base64_to_base64url(value):
    return value.replace("+", "-").replace("/", "_")


def hex_to_base64url(value):
    return base64_to_base64url(base64.b64encode(bytes.fromhex(value)).decode("ascii"))


def base64_to_hex(value):
    """Accepts both alphabets, LND is not consistent in what it returns."""
    normalized = value.replace("-", "+").replace("_", "/")
    return base64.b64decode(normalized, validate=True).hex()


def _int_field(data, key):
    try:
        return int(data.get(key) or 0)
    except (TypeError, ValueError):
        raise DecodeFailed(f"Invalid '{key}' in LND response: {data.get(key)!r}")


def parse_invoice(data):
    """Builds a WrappedInvoice from an LND Invoice message."""
    try:
        payment_hash = base64_to_hex(data["r_hash"])
    except (KeyError, TypeError, ValueError, binascii.Error):
        raise LndApiError(f"Invoice without a valid r_hash: {data!r}", response_data=data)
    try:
        state = InvoiceState(data.get("state"))
    except ValueError:
        raise LndApiError(f"Unexpected invoice state: {data.get('state')!r}", response_data=data)
    return WrappedInvoice(
        payment_hash=payment_hash,
        amount_msat=_int_field(data, "value_msat"),
        expiry_seconds=_int_field(data, "expiry"),
        state=state,
        payment_request=data.get("payment_request") or None,
    )


class LndRestClient:
    """Calls against one LND node, authenticated with a hex macaroon.

    Holds no per-operation state, so one client can serve concurrent wraps.
    """

    def __init__(self, rest_host, tls_cert_path, macaroon_hex, create_timeout_seconds=2.0):
        self.base_url = f"https://{rest_host}"
        self.tls_cert_path = tls_cert_path
        self.create_timeout_seconds = create_timeout_seconds
        self._headers = {"Grpc-Metadata-macaroon": macaroon_hex}

    @classmethod
    def from_config(cls, config):
        return cls(
            config.rest_host,
            config.tls_cert_path,
            config.macaroon_hex,
            create_timeout_seconds=config.create_timeout_seconds,
        )

    def _request(self, method, path, data=None, timeout=None):
        method = method.upper()
        url = f"{self.base_url}{path}"
        logger.debug(f"LND REST {method} {path} {json.dumps(data) if data else ''}")

        kwargs = {"headers": self._headers, "verify": self.tls_cert_path, "timeout": timeout}
        if data:
            if method in ("POST", "PUT"):
                kwargs["json"] = data
            else:
                kwargs["params"] = data

        try:
            response = requests.request(method, url, **kwargs)
        except requests.exceptions.Timeout as e:
            raise LndTimeoutError(f"{method} {path} timed out after {timeout}s: {e}")
        except requests.exceptions.RequestException as e:
            raise LndApiError(f"{method} {path} failed: {e}")
        except (ValueError, OSError) as e:
            # invalid timeouts or certificate paths surface from requests untyped
            raise LndApiError(f"{method} {path} failed: {e}")

        return self._parse_response(method, path, response)

    @staticmethod
    def _parse_response(method, path, response):
        content_type = response.headers.get("Content-Type", "")
        if not content_type.startswith("application/json"):
            raise LndApiError(
                f"Unexpected Response Content-Type: {content_type}",
                status_code=response.status_code,
                response_data=response.text,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise LndApiError(
                f"Invalid JSON from {method} {path}: {e}",
                status_code=response.status_code,
                response_data=response.text,
            )

        if isinstance(body, dict):
            if body.get("error"):
                error = body["error"]
                message = error.get("message") if isinstance(error, dict) else error
                raise LndApiError(str(message), status_code=response.status_code, response_data=body)
            if int(body.get("code") or 0) > 0:
                raise LndApiError(
                    str(body.get("message")), status_code=response.status_code, response_data=body
                )
        if not response.ok:
            raise LndApiError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                response_data=body,
            )
        return body or {}

    def decode_payreq(self, payment_request):
        """Decodes a BOLT11 payment request into an OriginalInvoice."""
        data = self._request("get", f"/v1/payreq/{payment_request}")
        payment_hash = data.get("payment_hash")
        if not payment_hash:
            raise DecodeFailed(f"Decoded invoice has no payment_hash: {data!r}")
        if data.get("num_msat") not in (None, ""):
            amount_msat = _int_field(data, "num_msat")
        else:
            amount_msat = _int_field(data, "num_satoshis") * 1000
        return OriginalInvoice(
            payment_request=payment_request,
            payment_hash=payment_hash.lower(),
            amount_msat=amount_msat,
            timestamp=_int_field(data, "timestamp"),
            expiry_seconds=_int_field(data, "expiry"),
            description=data.get("description") or "",
            description_hash=data.get("description_hash") or "",
        )

    def add_hold_invoice(self, payment_hash, value_msat, expiry_seconds, memo="", description_hash=""):
        """
        Creates a hold invoice. This end-point of LND is known to hang, so the
        call is aborted after ``create_timeout_seconds``; callers must look the
        invoice up afterwards to learn whether it exists.
        """
        params = {
            "memo": memo,
            "hash": hex_to_base64url(payment_hash),
            "value_msat": str(value_msat),
            "expiry": str(expiry_seconds),
        }
        if description_hash:
            params["description_hash"] = hex_to_base64url(description_hash)
        return self._request(
            "post", "/v2/invoices/hodl", params, timeout=self.create_timeout_seconds
        )

    def lookup_invoice(self, payment_hash):
        """Returns the WrappedInvoice for ``payment_hash`` or None if LND has none."""
        try:
            data = self._request(
                "get", "/v2/invoices/lookup", {"payment_hash": hex_to_base64url(payment_hash)}
            )
        except LndTimeoutError:
            raise
        except LndApiError as e:
            code = e.response_data.get("code") if isinstance(e.response_data, dict) else None
            if e.status_code == 404 or code == GRPC_NOT_FOUND:
                logger.info(f"No invoice found for hash {payment_hash}")
                return None
            raise
        return parse_invoice(data)

    @contextmanager
    def subscribe_invoice(self, payment_hash, read_timeout=None):
        """
        Opens the streaming subscription for one invoice.

        Yields an iterator of Invoice messages (dicts). The HTTP connection is
        closed when the ``with`` block exits, however it exits.
        """
        path = f"/v2/invoices/subscribe/{hex_to_base64url(payment_hash)}"
        logger.debug(f"LND REST GET {path} (stream)")
        try:
            response = requests.get(
                f"{self.base_url}{path}",
                headers=self._headers,
                verify=self.tls_cert_path,
                stream=True,
                timeout=(None, read_timeout),
            )
        except requests.exceptions.Timeout as e:
            raise LndTimeoutError(f"Subscription for {payment_hash} timed out: {e}")
        except requests.exceptions.RequestException as e:
            raise LndApiError(f"Subscription for {payment_hash} failed: {e}")
        except (ValueError, OSError) as e:
            raise LndApiError(f"Subscription for {payment_hash} failed: {e}")

        try:
            if not response.ok:
                raise LndApiError(
                    f"Subscription for {payment_hash} returned HTTP {response.status_code}",
                    status_code=response.status_code,
                    response_data=response.text,
                )
            yield self._iter_stream(response)
        finally:
            response.close()
            logger.debug(f"Subscription for {payment_hash} closed")

    @staticmethod
    def _iter_stream(response):
        try:
            for line in response.iter_lines():
                if not line:
                    continue
                try:
                    message = json.loads(line)
                except ValueError:
                    raise LndApiError(
                        "Invalid message received via subscription: JSON data expected",
                        response_data=line,
                    )
                if isinstance(message, dict) and message.get("error"):
                    error = message["error"]
                    text = error.get("message") if isinstance(error, dict) else error
                    raise LndApiError(str(text), response_data=message)
                yield message.get("result") if isinstance(message, dict) else message
        except requests.exceptions.Timeout as e:
            raise LndTimeoutError(f"Subscription read timed out: {e}")
        except requests.exceptions.RequestException as e:
            raise LndApiError(f"Subscription connection lost: {e}")

    def pay_invoice(self, payment_request, fee_limit_msat):
        """Pays synchronously and reports the preimage (hex) or LND's error text."""
        data = self._request(
            "post",
            "/v1/channels/transactions",
            {
                "payment_request": payment_request,
                "fee_limit": {"fixed_msat": str(fee_limit_msat)},
            },
        )
        if data.get("payment_error"):
            return PaymentOutcome(error=data["payment_error"])
        preimage = data.get("payment_preimage")
        if not preimage:
            return PaymentOutcome()
        try:
            return PaymentOutcome(preimage=base64_to_hex(preimage))
        except (ValueError, binascii.Error):
            return PaymentOutcome(error=f"Unreadable preimage in payment response: {preimage!r}")

    def cancel_invoice(self, payment_hash):
        return self._request(
            "post", "/v2/invoices/cancel", {"payment_hash": hex_to_base64url(payment_hash)}
        )

    def settle_invoice(self, preimage):
        return self._request("post", "/v2/invoices/settle", {"preimage": hex_to_base64url(preimage)})
