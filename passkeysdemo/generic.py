import base64
import hashlib
import json
import logging
import re
import secrets

import aiohttp.hdrs

from . import exceptions

#

L = logging.getLogger(__name__)

#

_BASE64URL_PATTERN = re.compile(r"[A-Za-z0-9_-]*")


def base64url_encode(data: bytes) -> str:
	"""
	Encode bytes as URL-safe base64 without padding.
	"""
	return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def base64url_decode(data: str) -> bytes:
	"""
	Decode URL-safe base64, restoring the padding from the input length.

	Raises ValueError if the input contains characters outside the URL-safe alphabet
	or if its unpadded length leaves a remainder of 1 modulo 4, which no byte sequence encodes to.
	"""
	if isinstance(data, bytes):
		data = data.decode("ascii")
	data = data.rstrip("=")
	if _BASE64URL_PATTERN.fullmatch(data) is None:
		raise ValueError("Invalid base64url character")
	remainder = len(data) % 4
	if remainder == 1:
		raise ValueError("Invalid base64url length")
	if remainder > 0:
		data += "=" * (4 - remainder)
	return base64.urlsafe_b64decode(data)


def generate_token(length: int = 32) -> str:
	"""
	Random bytes of given length, base64url-encoded
	"""
	return base64url_encode(secrets.token_bytes(length))


def hash_token(token: str) -> str:
	"""
	Tokens are persisted only as their SHA-256 digest.
	"""
	return base64url_encode(hashlib.sha256(token.encode("ascii")).digest())


def tokens_equal(a, b) -> bool:
	"""
	Constant-time comparison of two tokens. None never equals anything.
	"""
	if a is None or b is None:
		return False
	if isinstance(a, str):
		a = a.encode("utf-8")
	if isinstance(b, str):
		b = b.encode("utf-8")
	return secrets.compare_digest(a, b)


def get_bearer_token_value(request):
	bearer_prefix = "Bearer "
	auth_header = request.headers.get(aiohttp.hdrs.AUTHORIZATION, None)
	if auth_header is None:
		L.info("Request has no Authorization header")
		return None
	if auth_header.startswith(bearer_prefix):
		token = auth_header[len(bearer_prefix):].strip()
		if len(token) > 0:
			return token

	L.info("No Bearer token in Authorization header")
	return None


async def read_json_body(request) -> dict:
	"""
	Parse the request body as a JSON object. An empty body is an empty object.
	"""
	if not request.body_exists:
		return {}
	body = await request.text()
	if len(body.strip()) == 0:
		return {}
	try:
		data = json.loads(body)
	except json.JSONDecodeError as e:
		raise exceptions.BadRequestError("Request body is not valid JSON") from e
	if not isinstance(data, dict):
		raise exceptions.BadRequestError("Request body must be a JSON object")
	return data
