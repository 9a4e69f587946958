from loyalty.campaigns.service import CampaignBudgetGuard, CampaignService

__all__ = ["CampaignBudgetGuard", "CampaignService"]
