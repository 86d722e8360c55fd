"""Page-resident agent: DOM access, element registries, discovery and input injection."""
