"""Pure reservation rules: state machines, time windows, pricing, auto-confirmation."""
