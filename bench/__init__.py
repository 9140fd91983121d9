"""Golden model, trace tooling and simulation bridge for the predictor."""
