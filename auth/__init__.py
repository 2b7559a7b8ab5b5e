"""auth/ -- Identity and session-security core for SessionGuard.

Entry point is auth.authenticator.Authenticator. Everything else in the
package is a component it composes.

Layer rule: auth/ imports stdlib, third-party libraries and core/.
It does NOT import from api/. api/ and main.py import from auth/, not the
other way around.
"""
