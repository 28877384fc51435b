import os
import configparser
from pathlib import Path

class Config:
    """Configuration manager for the Inventory Ledger."""

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the configuration if not already initialized."""
        if self._initialized:
            return

        override = os.getenv('INVENTORY_LEDGER_CONFIG')
        if override:
            self._config_path = Path(override)
            self._config_dir = self._config_path.parent
        else:
            self._config_dir = Path('config')
            self._config_path = self._config_dir / 'settings.ini'
        self._config = configparser.ConfigParser(interpolation=None)

        # Create config directory if it doesn't exist
        if not self._config_dir.exists():
            self._config_dir.mkdir(parents=True)

        # Load config or create default
        if self._config_path.exists():
            self._config.read(self._config_path)
        else:
            self._create_default_config()

        self._initialized = True

    def _create_default_config(self):
        """Create default configuration file."""
        self._config['DATABASE'] = {
            'engine': 'sqlite',
            'path': 'data/inventory_ledger.db',
            'host': 'localhost',
            'port': '5432',
            'database': 'inventory_ledger',
            'username': 'postgres',
            'password': 'postgres',
            'echo': 'False',
            'sqlite_timeout': '30'
        }

        self._config['LOGGING'] = {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'directory': 'logs',
            'max_size_mb': '10',
            'backup_count': '5',
            'console_output': 'True'
        }

        self._config['BATCH_PROCESS'] = {
            'expiry_warning_days': '30'
        }

        self._config['BUSINESS_RULES'] = {
            'safety_floor': '50',
            'critical_level': '50',
            'sales_window_days': '30',
            'default_capacity': '100',
            'order_multiple': '1',
            'checkout_timeout_seconds': '30',
            'max_decrement_retries': '5',
            'product_code_pattern': r'^[A-Z]{2}-[A-Z]{2}-\d{3}$'
        }

        self._config['LOCATION_DEFAULTS'] = {
            'warehouse_capacity': '10000',
            'shelf_capacity': '500',
            'online_capacity': '10000',
            'min_threshold': '10'
        }

        self._config['CART'] = {
            'ttl_minutes': '60',
            'sweep_interval_seconds': '300'
        }

        self._save_config()

    def _save_config(self):
        """Save configuration to file."""
        with open(self._config_path, 'w') as configfile:
            self._config.write(configfile)

    def get(self, section, key, default=None):
        """Get configuration value."""
        try:
            return self._config.get(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return default

    def get_int(self, section, key, default=None):
        """Get configuration value as integer."""
        try:
            return self._config.getint(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_float(self, section, key, default=None):
        """Get configuration value as float."""
        try:
            return self._config.getfloat(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_boolean(self, section, key, default=None):
        """Get configuration value as boolean."""
        try:
            return self._config.getboolean(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def set(self, section, key, value):
        """Set configuration value."""
        if not self._config.has_section(section):
            self._config.add_section(section)

        self._config.set(section, key, str(value))
        self._save_config()

    def get_db_url(self):
        """Generate SQLAlchemy database URL."""
        engine = self.get('DATABASE', 'engine', 'sqlite')

        if engine == 'sqlite':
            path = self.get('DATABASE', 'path', 'data/inventory_ledger.db')
            return f"sqlite:///{path}"

        username = self.get('DATABASE', 'username', 'postgres')
        password = self.get('DATABASE', 'password', 'postgres')
        host = self.get('DATABASE', 'host', 'localhost')
        port = self.get('DATABASE', 'port', '5432')
        database = self.get('DATABASE', 'database', 'inventory_ledger')

        return f"{engine}://{username}:{password}@{host}:{port}/{database}"

    @property
    def log_config(self):
        """Get logging configuration."""
        return {
            'level': self.get('LOGGING', 'level', 'INFO'),
            'format': self.get('LOGGING', 'format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            'directory': self.get('LOGGING', 'directory', 'logs'),
            'max_size_mb': self.get_int('LOGGING', 'max_size_mb', 10),
            'backup_count': self.get_int('LOGGING', 'backup_count', 5),
            'console_output': self.get_boolean('LOGGING', 'console_output', True)
        }

    @property
    def batch_config(self):
        """Get batch processing configuration."""
        return {
            'expiry_warning_days': self.get_int('BATCH_PROCESS', 'expiry_warning_days', 30)
        }

    @property
    def business_rules(self):
        """Get business rules configuration."""
        return {
            'safety_floor': self.get_int('BUSINESS_RULES', 'safety_floor', 50),
            'critical_level': self.get_int('BUSINESS_RULES', 'critical_level', 50),
            'sales_window_days': self.get_int('BUSINESS_RULES', 'sales_window_days', 30),
            'default_capacity': self.get_int('BUSINESS_RULES', 'default_capacity', 100),
            'order_multiple': self.get_int('BUSINESS_RULES', 'order_multiple', 1),
            'checkout_timeout_seconds': self.get_float('BUSINESS_RULES', 'checkout_timeout_seconds', 30.0),
            'max_decrement_retries': self.get_int('BUSINESS_RULES', 'max_decrement_retries', 5),
            'product_code_pattern': self.get('BUSINESS_RULES', 'product_code_pattern', r'^[A-Z]{2}-[A-Z]{2}-\d{3}$')
        }

    @property
    def location_defaults(self):
        """Get capacity and threshold defaults for new location records."""
        return {
            'WAREHOUSE': self.get_int('LOCATION_DEFAULTS', 'warehouse_capacity', 10000),
            'SHELF': self.get_int('LOCATION_DEFAULTS', 'shelf_capacity', 500),
            'ONLINE': self.get_int('LOCATION_DEFAULTS', 'online_capacity', 10000),
            'min_threshold': self.get_int('LOCATION_DEFAULTS', 'min_threshold', 10)
        }

    @property
    def cart_config(self):
        """Get shopping cart configuration."""
        return {
            'ttl_minutes': self.get_int('CART', 'ttl_minutes', 60),
            'sweep_interval_seconds': self.get_int('CART', 'sweep_interval_seconds', 300)
        }

# Global config instance
config = Config()
