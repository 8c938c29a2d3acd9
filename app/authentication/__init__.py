"""
Authentication application.

This app provides the mock Pi Network login, logout and the session
idle timeout for the testnet demo.

Key components:
    - SessionStore: Explicit handle on the client's Django session
    - AuthService: Login, logout, timeout check, dashboard summary
    - SessionTimeoutMiddleware: Runs the timeout check on every request

Usage:
    from authentication.session_store import SessionStore
    from authentication.services import AuthService
"""
