"""Reel Studio: segmented AI video generation backend."""
