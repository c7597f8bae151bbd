from config.settings import (
    Config,
    DevelopmentConfig,
    TestingConfig,
    ProductionConfig,
    CONFIG_BY_NAME,
)

__all__ = [
    'Config',
    'DevelopmentConfig',
    'TestingConfig',
    'ProductionConfig',
    'CONFIG_BY_NAME',
]
