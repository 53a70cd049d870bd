SYSTEM_HEALTH = "/health"
