import logging

import asab
import asab.web
import asab.metrics
import asab.web.rest
import asab.proactor

from . import middleware

#

L = logging.getLogger(__name__)

#


class PassKeysDemoApplication(asab.Application):

	def __init__(self):
		super().__init__()

		# Load modules
		self.add_module(asab.web.Module)
		self.add_module(asab.proactor.Module)
		self.add_module(asab.metrics.Module)

		# Locate web service
		self.WebService = self.get_service("asab.WebService")

		# Create the web container
		self.WebContainer = asab.web.WebContainer(self.WebService, "web")
		self.WebContainer.WebApp.middlewares.append(asab.web.rest.JsonExceptionMiddleware)
		self.WebContainer.WebApp.middlewares.append(middleware.app_middleware_factory(self))

		# Init Credentials service
		from .credentials import CredentialsService
		self.CredentialsService = CredentialsService(self)

		# Init Session services
		# depends on: CredentialsService
		from .session import SessionService, BearerTokenService
		self.SessionService = SessionService(self)
		self.BearerTokenService = BearerTokenService(self)

		# Depends on: SessionService
		self.WebContainer.WebApp.middlewares.append(middleware.session_middleware_factory(self))

		from .authn.webauthn import WebAuthnService
		self.WebAuthnService = WebAuthnService(self)

		# Init Authentication service
		# depends on: CredentialsService, SessionService, BearerTokenService, WebAuthnService
		from .authn import AuthenticationService, AuthenticationHandler
		self.AuthenticationService = AuthenticationService(self)
		self.AuthenticationHandler = AuthenticationHandler(self, self.AuthenticationService)

		# Init Account service
		# depends on: AuthenticationService
		from .account import AccountService, AccountHandler
		self.AccountService = AccountService(self)
		self.AccountHandler = AccountHandler(self, self.AccountService)

		# Single-endpoint dispatcher used by the native client
		# depends on: AuthenticationHandler, AccountHandler
		from .authn import DispatchHandler
		self.DispatchHandler = DispatchHandler(self, self.AuthenticationHandler, self.AccountHandler)

		struct_data = {"rpid": self.WebAuthnService.RelyingPartyId}
		struct_data.update(self.CredentialsService.Provider.get_info())
		L.log(asab.LOG_NOTICE, "PassKeys demo server is ready.", struct_data=struct_data)
