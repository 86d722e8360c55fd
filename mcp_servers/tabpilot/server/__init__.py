"""Control-protocol side of the bridge: contract, result types, formatting."""
