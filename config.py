import os
from dotenv import load_dotenv

# 加载 .env 环境变量
load_dotenv()
basedir = os.path.abspath(os.path.dirname(__file__))


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


class Config:
    """基础配置类"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'hard-to-guess-string'

    # 数据库配置
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_RECORD_QUERIES = True
    # SQLite 写锁等待时间（秒），并发收货/库存变动时依赖它串行化
    SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'timeout': 15}}

    # 业务参数
    TAX_RATE = float(os.environ.get('TAX_RATE', '0.12'))  # 12% 增值税
    # 是否允许负库存（缺货预订），默认严格禁止
    ALLOW_NEGATIVE_STOCK = _env_flag('ALLOW_NEGATIVE_STOCK')

    # 单号前缀
    ORDER_NUMBER_PREFIX = os.environ.get('ORDER_NUMBER_PREFIX', 'ORD')
    CUSTOMER_CODE_PREFIX = os.environ.get('CUSTOMER_CODE_PREFIX', 'CUST')
    PO_NUMBER_PREFIX = os.environ.get('PO_NUMBER_PREFIX', 'PO')

    # 单号冲突时，整单重建的最大尝试次数
    ORDER_CREATE_MAX_ATTEMPTS = int(os.environ.get('ORDER_CREATE_MAX_ATTEMPTS', '3'))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    @staticmethod
    def init_app(app):
        # 确保实例目录存在（SQLite 数据库文件所在位置）
        instance_dir = os.path.join(basedir, 'instance')
        if not os.path.exists(instance_dir):
            os.makedirs(instance_dir)


class DevelopmentConfig(Config):
    """开发环境配置"""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance', 'nexus_core.db')


class ProductionConfig(Config):
    """生产环境配置"""
    DEBUG = False

    DATABASE_URL = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance', 'nexus_core_prod.db')
    # PostgreSQL URL 修正（部分托管平台使用 postgres://）
    if DATABASE_URL and DATABASE_URL.startswith('postgres://'):
        DATABASE_URL = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    # PostgreSQL 不需要 SQLite 的 timeout 参数
    SQLALCHEMY_ENGINE_OPTIONS = {'pool_pre_ping': True} \
        if not DATABASE_URL.startswith('sqlite') else Config.SQLALCHEMY_ENGINE_OPTIONS

    @classmethod
    def init_app(cls, app):
        Config.init_app(app)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    LOG_LEVEL = 'WARNING'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
