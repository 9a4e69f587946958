from loyalty.claims.service import ClaimService

__all__ = ["ClaimService"]
