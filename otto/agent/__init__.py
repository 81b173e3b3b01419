"""Agent core: parsing, decomposition, the two control loops and their collaborators."""
