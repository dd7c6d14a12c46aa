from .app import PassKeysDemoApplication

import asab

asab.Config.add_defaults({
	"web": {
		"listen": "8080",
	},

	"passkeysdemo:webauthn": {
		"relying_party_name": "PassKeys Demo",

		# Expected origin(s) of the client data, space separated.
		# Native apps using associated domains report "https://<relying party id>".
		"origin": "http://localhost:8080",

		# RP ID must match host's domain name (without scheme, port or subpath)
		# Defaults to the hostname of the first origin
		"relying_party_id": "",

		"attestation": "none",

		# Lifetime of an outstanding challenge
		"challenge_timeout": "1 m",

		# The verification runs in a worker thread and fails if it does not finish in time
		"verification_timeout": "10 s",

		# Some platform authenticators never increment the signature counter.
		# Enabling this accepts an assertion whose counter stays at zero.
		"allow_zero_sign_count": "no",
	},

	"passkeysdemo:session": {
		# Idle lifetime of a server session (and of any challenge it holds)
		"expiration": "1 h",

		# Require that the bearer token is the one issued within the current session
		"bind_bearer_token": "yes",
	},

	"passkeysdemo:cookie": {
		"name": "PKDSID",
		"secure": "yes",
		"domain": "",
	},

	"passkeysdemo:credentials": {
		# Available providers: "dict", "mysql", "mongodb"
		"provider": "dict",
	},

	"passkeysdemo:stepup": {
		# Space-separated list of account mutations that need a fresh WebAuthn assertion
		# Available mutations: "update", "delete"
		"require": "delete",
	},
})

__all__ = [
	"PassKeysDemoApplication",
]
