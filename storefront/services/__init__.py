"""Domain services: cart store and service, payment orchestration, reporting."""
