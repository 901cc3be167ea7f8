"""Domain services. Import submodules directly (e.g. trackwatch.services.mapper_alert_service)."""
