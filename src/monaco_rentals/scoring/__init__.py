"""Listing desirability scoring."""

from monaco_rentals.scoring.rental_score import RentalScore, compute_rental_score, score_listing

__all__ = ["RentalScore", "compute_rental_score", "score_listing"]
