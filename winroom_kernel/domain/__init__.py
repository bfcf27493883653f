"""Pure domain logic: no sessions, no I/O, time only via an injected Clock."""
