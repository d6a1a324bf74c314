from beanie import Document


class StakingConfig(Document):
    admin_hot_wallet_address: str | None = None

    class Settings:
        name = "crypto_staking_config"
