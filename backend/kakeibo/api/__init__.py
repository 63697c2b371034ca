"""HTTP surface for the receipt pipeline."""
