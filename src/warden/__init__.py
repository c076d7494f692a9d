"""warden: email/password authentication backend with TOTP and recovery codes."""
