"""Engine API schemas and the payload protocol driver."""
