"""Pure domain layer: value objects, state machines and validation.  No I/O."""
