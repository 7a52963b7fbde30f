#!/usr/bin/env python3
#
# letsrenew/acme/client.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Lightweight ACME v2 client (RFC 8555) for HTTP-01 validation."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import httpx
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.x509.oid import NameOID

from .errors import AcmeError, UnsupportedChallengeError

_log = logging.getLogger(__name__)

AccountKey = rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey

HTTP01 = "http-01"

# curve name -> (JWK crv, JWS alg, hash, coordinate size in bytes)
_EC_PARAMS: dict[str, tuple[str, str, hashes.HashAlgorithm, int]] = {
	"secp256r1": ("P-256", "ES256", hashes.SHA256(), 32),
	"secp384r1": ("P-384", "ES384", hashes.SHA384(), 48),
	"secp521r1": ("P-521", "ES512", hashes.SHA512(), 66),
}


def _b64url(data: bytes) -> str:
	"""Base64url encode without padding."""
	return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _int_bytes(value: int, length: Optional[int] = None) -> bytes:
	if length is None:
		length = max(1, (value.bit_length() + 7) // 8)
	return value.to_bytes(length, "big")


def _parse_acme_error(resp: httpx.Response) -> tuple[str, Optional[str]]:
	"""Extract (message, problem type) from an RFC 7807 problem document."""
	try:
		error = resp.json()
		detail = error.get("detail", "")
		error_type = error.get("type")
	except (ValueError, AttributeError):
		return resp.text or f"HTTP {resp.status_code}", None
	if detail:
		return (f"{detail} ({error_type})" if error_type else detail), error_type
	return resp.text, error_type


def jwk_thumbprint(jwk: dict) -> str:
	"""Calculate JWK thumbprint (RFC 7638)."""
	if "kty" not in jwk:
		raise ValueError("Missing kty in JWK")

	if jwk["kty"] == "EC":
		canonical = {"crv": jwk["crv"], "kty": "EC", "x": jwk["x"], "y": jwk["y"]}
	elif jwk["kty"] == "RSA":
		canonical = {"e": jwk["e"], "kty": "RSA", "n": jwk["n"]}
	else:
		raise ValueError(f"Unsupported key type: {jwk['kty']}")

	canonical_json = json.dumps(canonical, separators=(",", ":"), sort_keys=True)
	return _b64url(hashlib.sha256(canonical_json.encode("utf-8")).digest())


def generate_account_key() -> ec.EllipticCurvePrivateKey:
	"""New P-256 account key."""
	return ec.generate_private_key(ec.SECP256R1())


@dataclass(frozen=True)
class KeyAuthorization:
	"""Challenge token plus account key thumbprint."""
	token: str
	thumbprint: str

	@property
	def text(self) -> str:
		"""Body the challenge URL must answer with."""
		return f"{self.token}.{self.thumbprint}"

	@property
	def path(self) -> str:
		return f"/.well-known/acme-challenge/{self.token}"


class ACMEClient:
	"""ACME v2 client bound to one account key.
	
	Must be used as an async context manager; the HTTP connection pool lives
	for the duration of the ``async with`` block.
	"""
	
	def __init__(
		self,
		directory_url: str,
		account_key: Optional[AccountKey] = None,
		account_url: Optional[str] = None,
		*,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.directory_url = directory_url
		self.account_key: AccountKey = account_key or generate_account_key()
		self.account_url = account_url
		self.directory: dict = {}
		self.nonce: Optional[str] = None
		self.http_client: Optional[httpx.AsyncClient] = None
		self._transport = transport
	
	async def __aenter__(self) -> ACMEClient:
		self.http_client = httpx.AsyncClient(timeout=30.0, transport=self._transport)
		return self
	
	async def __aexit__(self, *args: Any) -> None:
		if self.http_client:
			await self.http_client.aclose()
			self.http_client = None

	def _http(self) -> httpx.AsyncClient:
		if not self.http_client:
			raise RuntimeError("HTTP client not initialized")
		return self.http_client
	
	async def _endpoint(self, name: str) -> str:
		"""Resolve a directory resource, fetching the directory on first use."""
		if not self.directory:
			resp = await self._http().get(self.directory_url)
			if resp.status_code != 200:
				message, error_type = _parse_acme_error(resp)
				raise AcmeError(
					f"Failed to fetch ACME directory: {message}",
					status_code=resp.status_code,
					error_type=error_type,
				)
			self.directory = resp.json()
		url = self.directory.get(name)
		if not url:
			raise AcmeError(f"ACME directory has no {name!r} resource")
		return url
	
	async def _get_nonce(self) -> str:
		"""Get a fresh nonce with fallback."""
		if self.nonce:
			nonce = self.nonce
			self.nonce = None
			return nonce

		url = await self._endpoint("newNonce")
		resp = await self._http().head(url)
		if "Replay-Nonce" in resp.headers:
			return resp.headers["Replay-Nonce"]

		# Fallback: GET request to newNonce
		resp = await self._http().get(url)
		if "Replay-Nonce" not in resp.headers:
			raise AcmeError("Failed to obtain ACME nonce", status_code=resp.status_code)
		return resp.headers["Replay-Nonce"]

	def _ec_params(self) -> tuple[str, str, hashes.HashAlgorithm, int]:
		key = self.account_key
		if not isinstance(key, ec.EllipticCurvePrivateKey):
			raise AcmeError(f"Unsupported account key type: {type(key).__name__}")
		try:
			return _EC_PARAMS[key.curve.name]
		except KeyError:
			raise AcmeError(f"Unsupported EC curve: {key.curve.name}") from None

	@property
	def alg(self) -> str:
		if isinstance(self.account_key, rsa.RSAPrivateKey):
			return "RS256"
		return self._ec_params()[1]
	
	def jwk(self) -> dict:
		"""JWK representation of the account public key."""
		if isinstance(self.account_key, rsa.RSAPrivateKey):
			rsa_numbers = self.account_key.public_key().public_numbers()
			return {
				"kty": "RSA",
				"n": _b64url(_int_bytes(rsa_numbers.n)),
				"e": _b64url(_int_bytes(rsa_numbers.e)),
			}

		crv, _, _, size = self._ec_params()
		ec_numbers = self.account_key.public_key().public_numbers()
		return {
			"kty": "EC",
			"crv": crv,
			"x": _b64url(_int_bytes(ec_numbers.x, size)),
			"y": _b64url(_int_bytes(ec_numbers.y, size)),
		}

	def thumbprint(self) -> str:
		return jwk_thumbprint(self.jwk())
	
	def _sign_payload(self, payload: bytes) -> bytes:
		"""Sign payload with the account key (RS256 or ES256/384/512)."""
		if isinstance(self.account_key, rsa.RSAPrivateKey):
			return self.account_key.sign(payload, padding.PKCS1v15(), hashes.SHA256())

		_, _, digest, size = self._ec_params()
		sig_der = self.account_key.sign(payload, ec.ECDSA(digest))
		r, s = decode_dss_signature(sig_der)
		# JWS signature is r || s with fixed-size coordinates
		return _int_bytes(r, size) + _int_bytes(s, size)
	
	async def _signed_request(
		self,
		url: str,
		payload: Optional[dict],
		*,
		retry_bad_nonce: bool = True,
	) -> httpx.Response:
		"""Make a signed JWS request to ACME server (payload None = POST-as-GET)."""
		nonce = await self._get_nonce()
		
		protected: dict[str, Any] = {
			"alg": self.alg,
			"nonce": nonce,
			"url": url,
		}
		if self.account_url:
			protected["kid"] = self.account_url
		else:
			protected["jwk"] = self.jwk()
		
		protected_b64 = _b64url(json.dumps(protected).encode("utf-8"))
		payload_b64 = "" if payload is None else _b64url(json.dumps(payload).encode("utf-8"))
		
		signing_input = f"{protected_b64}.{payload_b64}".encode("ascii")
		body = {
			"protected": protected_b64,
			"payload": payload_b64,
			"signature": _b64url(self._sign_payload(signing_input)),
		}
		
		resp = await self._http().post(
			url,
			json=body,
			headers={"Content-Type": "application/jose+json"},
		)
		
		# Store replay nonce for next request
		if "Replay-Nonce" in resp.headers:
			self.nonce = resp.headers["Replay-Nonce"]

		if retry_bad_nonce and resp.status_code == 400:
			_, error_type = _parse_acme_error(resp)
			if error_type and error_type.endswith(":badNonce"):
				_log.debug("ACME bad nonce for %s, retrying once", url)
				return await self._signed_request(url, payload, retry_bad_nonce=False)
		
		return resp

	async def _post(
		self,
		url: str,
		payload: Optional[dict],
		what: str,
		expected: Iterable[int] = (200,),
	) -> httpx.Response:
		"""Signed request that raises AcmeError on unexpected status codes."""
		resp = await self._signed_request(url, payload)
		if resp.status_code not in tuple(expected):
			message, error_type = _parse_acme_error(resp)
			raise AcmeError(
				f"Failed to {what}: {message}",
				status_code=resp.status_code,
				error_type=error_type,
			)
		return resp

	async def terms_of_service(self) -> Optional[str]:
		"""Current terms of service URI announced by the directory."""
		await self._endpoint("newAccount")
		return self.directory.get("meta", {}).get("termsOfService")
	
	async def new_account(self, contact: str, terms_of_service_agreed: bool = True) -> str:
		"""Register the account key and return the account URL."""
		payload = {
			"termsOfServiceAgreed": terms_of_service_agreed,
			"contact": [contact],
		}
		resp = await self._post(
			await self._endpoint("newAccount"), payload, "register account", (200, 201),
		)
		account_url = resp.headers.get("Location")
		if not account_url:
			raise AcmeError("No account URL in response", status_code=resp.status_code)
		self.account_url = account_url
		_log.info("ACME registered account %s", account_url)
		return account_url

	async def update_account(self, **fields: Any) -> dict:
		"""Update the registration (contact, terms agreement)."""
		if not self.account_url:
			raise AcmeError("Account not registered")
		resp = await self._post(self.account_url, fields, "update account")
		return resp.json()
	
	async def new_order(self, hostnames: list[str]) -> tuple[str, dict]:
		"""Create a new order; returns (order URL, order)."""
		payload = {"identifiers": [{"type": "dns", "value": h} for h in hostnames]}
		resp = await self._post(
			await self._endpoint("newOrder"), payload, "create order", (200, 201),
		)
		order_url = resp.headers.get("Location")
		if not order_url:
			raise AcmeError("No order URL in response", status_code=resp.status_code)
		return order_url, resp.json()

	async def new_authorization(self, hostname: str) -> tuple[str, dict]:
		"""Start authorization for hostname; returns (authorization URL, authorization).
		
		Uses pre-authorization when the directory offers ``newAuthz``,
		otherwise the first authorization of a fresh order.
		"""
		await self._endpoint("newOrder")
		if self.directory.get("newAuthz"):
			payload = {"identifier": {"type": "dns", "value": hostname}}
			resp = await self._post(
				self.directory["newAuthz"], payload, "create authorization", (200, 201),
			)
			authz_url = resp.headers.get("Location")
			if not authz_url:
				raise AcmeError("No authorization URL in response", status_code=resp.status_code)
			return authz_url, resp.json()

		_, order = await self.new_order([hostname])
		if not order.get("authorizations"):
			raise AcmeError("No authorizations in order")
		authz_url = order["authorizations"][0]
		return authz_url, await self.get_authorization(authz_url)
	
	async def get_authorization(self, auth_url: str) -> dict:
		"""Get authorization details including challenges."""
		resp = await self._post(auth_url, None, "get authorization")
		return resp.json()
	
	@staticmethod
	def http01_challenge(authorization: dict) -> dict:
		"""Pick the HTTP-01 challenge out of an authorization."""
		for challenge in authorization.get("challenges", []):
			if challenge.get("type") == HTTP01:
				return challenge
		offered = ", ".join(c.get("type", "?") for c in authorization.get("challenges", []))
		raise UnsupportedChallengeError(f"No HTTP-01 challenge offered (got: {offered or 'none'})")

	def key_authorization(self, token: str) -> KeyAuthorization:
		return KeyAuthorization(token=token, thumbprint=self.thumbprint())
	
	async def complete_challenge(self, challenge_url: str) -> dict:
		"""Tell the ACME server the challenge response is in place."""
		resp = await self._post(challenge_url, {}, "respond to challenge", (200, 202))
		return resp.json()
	
	async def poll_order(
		self,
		order_url: str,
		until: tuple[str, ...] = ("valid",),
		max_attempts: int = 30,
		delay: float = 2.0,
	) -> dict:
		"""Poll order status until it reaches one of ``until``."""
		for _ in range(max_attempts):
			resp = await self._post(order_url, None, "poll order")
			order = resp.json()
			status = order.get("status")
			if status in until:
				return order
			if status in ("invalid", "expired", "revoked"):
				raise AcmeError(f"Order failed: {status}")
			await asyncio.sleep(delay)
		
		raise AcmeError("Timeout waiting for order to be processed")

	@staticmethod
	def build_csr(hostname: str, domain_key: rsa.RSAPrivateKey) -> x509.CertificateSigningRequest:
		"""CSR for CN=hostname with a matching SAN (required by Let's Encrypt)."""
		return (
			x509.CertificateSigningRequestBuilder()
			.subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hostname)]))
			.add_extension(
				x509.SubjectAlternativeName([x509.DNSName(hostname)]),
				critical=False,
			)
			.sign(domain_key, hashes.SHA256())
		)
	
	async def new_certificate(self, hostname: str) -> tuple[bytes, rsa.RSAPrivateKey]:
		"""Order, finalize and download a certificate for an authorized host.
		
		Returns:
			Tuple of (PEM chain with the leaf first, domain private key)
		"""
		order_url, order = await self.new_order([hostname])
		if order.get("status") == "pending":
			raise AcmeError(f"Host {hostname} is not authorized (authorization expired?)")
		if order.get("status") != "ready":
			order = await self.poll_order(order_url, until=("ready",))

		domain_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
		csr_der = self.build_csr(hostname, domain_key).public_bytes(serialization.Encoding.DER)
		resp = await self._post(
			order["finalize"], {"csr": _b64url(csr_der)}, "finalize order", (200, 201),
		)
		order = resp.json()
		if order.get("status") != "valid":
			order = await self.poll_order(order_url)

		cert_url = order.get("certificate")
		if not cert_url:
			raise AcmeError("No certificate URL in order")
		
		cert_resp = await self._post(cert_url, None, "download certificate")
		_log.info("ACME certificate issued for %s", hostname)
		return cert_resp.text.encode("utf-8"), domain_key
