"""HarvestPro offline sync core."""
