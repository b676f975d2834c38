"""HTTP blueprints: value chains, directory lookup, health probes."""
