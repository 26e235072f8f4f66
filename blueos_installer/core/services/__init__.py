"""Services — the provisioning components."""
