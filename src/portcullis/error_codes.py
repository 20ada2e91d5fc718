"""Static catalog of user-facing error codes.

Codes are opaque to the login controllers; the catalog exists so that views
can look up a title and description for whatever code a backend raised.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

__all__ = ["ErrorCodes"]


_TITLES: Mapping[str, str] = MappingProxyType(
    {
        "ACSPARAMS": "No SAML response provided",
        "ARSPARAMS": "No SAML message provided",
        "AUTHSOURCEERROR": "Authentication source error",
        "BADREQUEST": "Bad request received",
        "CASERROR": "CAS Error",
        "CONFIG": "Configuration error",
        "CREATEREQUEST": "Error creating request",
        "DISCOPARAMS": "Bad request to discovery service",
        "GENERATEAUTHNRESPONSE": "Could not create authentication response",
        "INVALIDCERT": "Invalid certificate",
        "LDAPERROR": "LDAP Error",
        "LOGOUTINFOLOST": "Logout information lost",
        "LOGOUTREQUEST": "Error processing the Logout Request",
        "MEMCACHEDOWN": "Cannot retrieve session data",
        "METADATA": "Error loading metadata",
        "METADATANOTFOUND": "Metadata not found",
        "NOACCESS": "No access",
        "NOCERT": "No certificate",
        "NORELAYSTATE": "No RelayState",
        "NOSTATE": "State information lost",
        "NOTFOUND": "Page not found",
        "NOTFOUNDREASON": "Page not found",
        "NOTSET": "Password not set",
        "NOTVALIDCERT": "Invalid certificate",
        "PROCESSASSERTION": "Error processing response from Identity Provider",
        "PROCESSAUTHNREQUEST": "Error processing request from Service Provider",
        "RESPONSESTATUSNOSUCCESS": "Error received from Identity Provider",
        "SLOSERVICEPARAMS": "No SAML message provided",
        "SSOPARAMS": "No SAML request provided",
        "UNHANDLEDEXCEPTION": "Unhandled exception",
        "UNKNOWNCERT": "Unknown certificate",
        "USERABORTED": "Authentication aborted",
        "WRONGUSERPASS": "Incorrect username or password",
    }
)

_DESCRIPTIONS: Mapping[str, str] = MappingProxyType(
    {
        "ACSPARAMS": "You accessed the Assertion Consumer Service interface, but did not provide a SAML "
        "Authentication Response.",
        "ARSPARAMS": "You accessed the Artifact Resolution Service interface, but did not provide a SAML "
        "ArtifactResolve message.",
        "AUTHSOURCEERROR": "Authentication error in source %AUTHSOURCE%. The reason was: %REASON%",
        "BADREQUEST": "There is an error in the request to this page. The reason was: %REASON%",
        "CASERROR": "Error when communicating with the CAS server.",
        "CONFIG": "The identity provider appears to be misconfigured.",
        "CREATEREQUEST": "An error occurred when trying to create the SAML request.",
        "DISCOPARAMS": "The parameters sent to the discovery service were not according to specifications.",
        "GENERATEAUTHNRESPONSE": "When this identity provider tried to create an authentication response, an "
        "error occurred.",
        "INVALIDCERT": "You did not present a valid certificate.",
        "LDAPERROR": "The user database could not be reached when you tried to log in. The error was: %REASON%",
        "LOGOUTINFOLOST": "The information about the current logout operation has been lost. You should return "
        "to the service you were trying to log out from and try to log out again.",
        "LOGOUTREQUEST": "An error occurred when trying to process the Logout Request.",
        "MEMCACHEDOWN": "Your session data cannot be retrieved right now due to technical difficulties. Please "
        "try again in a few minutes.",
        "METADATA": "There is some misconfiguration of the metadata of this installation.",
        "METADATANOTFOUND": "Unable to locate metadata for %ENTITYID%",
        "NOACCESS": "This endpoint is not enabled.",
        "NOCERT": "Authentication failed: your browser did not send any certificate",
        "NORELAYSTATE": "The initiator of this request did not provide a RelayState parameter indicating where "
        "to go next.",
        "NOSTATE": "State information lost, and no way to restart the request",
        "NOTFOUND": "The given page was not found. The URL was: %URL%",
        "NOTFOUNDREASON": "The given page was not found. The reason was: %REASON%  The URL was: %URL%",
        "NOTSET": "The password in the configuration (auth.adminpassword) is not changed from the default "
        "value.",
        "NOTVALIDCERT": "You did not present a valid certificate.",
        "PROCESSASSERTION": "We did not accept the response sent from the Identity Provider.",
        "PROCESSAUTHNREQUEST": "This Identity Provider received an Authentication Request from a Service "
        "Provider, but an error occurred when trying to process the request.",
        "RESPONSESTATUSNOSUCCESS": "The Identity Provider responded with an error. (The status code in the SAML "
        "Response was not success)",
        "SLOSERVICEPARAMS": "You accessed the SingleLogoutService interface, but did not provide a SAML "
        "LogoutRequest or LogoutResponse.",
        "SSOPARAMS": "You accessed the Single Sign On Service interface, but did not provide a SAML "
        "Authentication Request.",
        "UNHANDLEDEXCEPTION": "An unhandled exception was thrown.",
        "UNKNOWNCERT": "Authentication failed: the certificate your browser sent is unknown",
        "USERABORTED": "The authentication was aborted by the user",
        "WRONGUSERPASS": "Either no user with the given username could be found, or the password you gave was "
        "wrong. Please check the username and try again.",
    }
)

_FALLBACK = "UNHANDLEDEXCEPTION"


class ErrorCodes:
    """Lookup helpers over the static error catalog."""

    @staticmethod
    def codes() -> tuple[str, ...]:
        return tuple(sorted(_TITLES))

    @staticmethod
    def is_known(code: str) -> bool:
        return code in _TITLES

    @staticmethod
    def title(code: str) -> str:
        return _TITLES.get(code, _TITLES[_FALLBACK])

    @staticmethod
    def description(code: str) -> str:
        return _DESCRIPTIONS.get(code, _DESCRIPTIONS[_FALLBACK])

    @staticmethod
    def all_messages() -> dict[str, dict[str, str]]:
        """Return the catalog in the shape views expect for client-side lookup."""

        return {"title": dict(_TITLES), "descr": dict(_DESCRIPTIONS)}
