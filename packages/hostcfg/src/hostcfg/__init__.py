"""hostcfg: option schema, validation and profile composition for declarative hosts."""
