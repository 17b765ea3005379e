"""Click subcommands for the conduit CLI."""
