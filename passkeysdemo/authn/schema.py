BASE64URL_PATTERN = r"^[A-Za-z0-9_-]*\Z"

_BASE64URL = {
	"type": "string",
	"pattern": BASE64URL_PATTERN,
	"minLength": 2,
}

_USER_ID = {
	"type": "string",
	"minLength": 1,
	"maxLength": 255,
}

_DISPLAY_NAME = {
	"type": "string",
	"minLength": 1,
	"maxLength": 255,
	# Not blank
	"pattern": r"\S",
}

_CREDO = {
	"type": "string",
	"maxLength": 255,
}


BEGIN_CREATE = {
	"type": "object",
	"required": ["userId", "displayName"],
	"properties": {
		"userId": _USER_ID,
		"displayName": _DISPLAY_NAME,
	},
}

COMPLETE_CREATE = {
	"type": "object",
	"required": ["clientDataJSON", "attestationObject"],
	"properties": {
		"clientDataJSON": _BASE64URL,
		# CBOR attestation object
		"attestationObject": _BASE64URL,
	},
}

BEGIN_LOGIN = {
	"type": "object",
	"properties": {
		# Without userId, the challenge is for a discoverable credential
		"userId": _USER_ID,
	},
}

ASSERTION = {
	"type": "object",
	"required": ["clientDataJSON", "authenticatorData", "signature", "credentialId"],
	"properties": {
		"clientDataJSON": _BASE64URL,
		"authenticatorData": _BASE64URL,
		"signature": _BASE64URL,
		"credentialId": _BASE64URL,
	},
}

UPDATE_PROFILE = {
	"type": "object",
	"required": ["displayName"],
	"properties": {
		"displayName": _DISPLAY_NAME,
		"credo": _CREDO,
	},
}

BEGIN_STEPUP = {
	"type": "object",
	"required": ["operation"],
	"properties": {
		"operation": {
			"type": "string",
			"enum": ["update", "delete"],
		},
		"displayName": _DISPLAY_NAME,
		"credo": _CREDO,
	},
}
