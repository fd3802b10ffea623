"""auth-service - IP-bound access/refresh token issuance and rotation."""
