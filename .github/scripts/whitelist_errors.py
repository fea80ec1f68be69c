#!/usr/bin/env python3
"""
Error types raised by the SQL firewall whitelisting scripts.

The CLI turns any of these into exit status 1.  A duplicate rule is not an
error and has no class here.
"""


class WhitelistError(Exception):
    pass


class MissingArgument(WhitelistError):
    """A required argument was not supplied on the command line, in the
    environment, or in the configuration file."""


class IpValidationError(WhitelistError):
    pass


class InvalidFormat(IpValidationError):
    pass


class OctetOutOfRange(IpValidationError):
    pass


class PrefixOutOfRange(IpValidationError):
    pass


class ServiceUnavailable(WhitelistError):
    """An ``az`` call failed or the CLI is not installed."""
