"""Engine — the staged provisioning state machine."""
