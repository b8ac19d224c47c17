"""Account status lifecycle: suspension, bans, roles, verification and lockout."""
