"""
应用配置
支持从环境变量读取配置（会加载本地 .env 文件）
"""
import os
import secrets

from dotenv import load_dotenv

load_dotenv()

# 获取 backend 目录的绝对路径
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class Config:
    """基础配置"""

    # ==================== 安全配置 ====================
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)

    # 管理员 API Key（保护同步触发接口）
    ADMIN_API_KEY = os.environ.get('ADMIN_API_KEY')

    # ==================== 数据库配置 ====================
    DATABASE_URL = os.environ.get('DATABASE_URL')
    if DATABASE_URL:
        SQLALCHEMY_DATABASE_URI = DATABASE_URL
    else:
        SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(BASE_DIR, "catalog_mirror.db")}'

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # ==================== CORS 配置 ====================
    CORS_ORIGINS = os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:5173,http://127.0.0.1:5173'
    ).split(',')

    # ==================== 存储路径 ====================
    DATA_PATH = os.path.join(BASE_DIR, 'datas')
    # 访问令牌持久化文件（本地配置），为空则只保存在内存中
    TOKEN_CACHE_PATH = os.environ.get(
        'TOKEN_CACHE_PATH',
        os.path.join(DATA_PATH, 'access_tokens.json')
    )

    # ==================== 日志配置 ====================
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE')

    # ==================== 目录客户端 ====================
    # 返回目录客户端的工厂 "package.module:factory"，由宿主进程提供
    CATALOG_CLIENT_FACTORY = os.environ.get('CATALOG_CLIENT_FACTORY')

    # 启动时执行的全量同步模式（为空则不执行）
    FULL_RUN = os.environ.get('FULL_RUN', '')

    # ==================== 批次配置 ====================
    APP_TOKEN_BATCH_SIZE = int(os.environ.get('APP_TOKEN_BATCH_SIZE', '200'))
    PACKAGE_TOKEN_BATCH_SIZE = int(os.environ.get('PACKAGE_TOKEN_BATCH_SIZE', '1000'))
    METADATA_BATCH_SIZE = int(os.environ.get('METADATA_BATCH_SIZE', '10000'))

    # 等待背压闸门时的轮询间隔（毫秒）
    TOKEN_POLL_INTERVAL_MS = int(os.environ.get('TOKEN_POLL_INTERVAL_MS', '100'))
    METADATA_POLL_INTERVAL_MS = int(os.environ.get('METADATA_POLL_INTERVAL_MS', '500'))

    # ==================== 枚举配置 ====================
    ENUMERATE_APP_PADDING = int(os.environ.get('ENUMERATE_APP_PADDING', '50000'))
    ENUMERATE_PACKAGE_PADDING = int(os.environ.get('ENUMERATE_PACKAGE_PADDING', '10000'))
    # 查找最大已知应用 ID 时忽略大于等于该值的 ID
    ENUMERATE_APP_ID_CEILING = int(os.environ.get('ENUMERATE_APP_ID_CEILING', '2000000'))

    # ==================== 背压配置 ====================
    MAX_IN_FLIGHT_PROCESSING = int(os.environ.get('MAX_IN_FLIGHT_PROCESSING', '50'))
    MAX_HELD_EXCLUSIVE_LOCKS = int(os.environ.get('MAX_HELD_EXCLUSIVE_LOCKS', '4'))

    # ==================== 工作线程 ====================
    JOB_WORKERS = int(os.environ.get('JOB_WORKERS', '4'))
    TASK_WORKERS = int(os.environ.get('TASK_WORKERS', '4'))

    @staticmethod
    def init_paths():
        """创建数据目录"""
        if not os.path.exists(Config.DATA_PATH):
            os.makedirs(Config.DATA_PATH)

    @classmethod
    def get_cors_config(cls):
        """/api 路由的 CORS 配置"""
        return {
            "origins": cls.CORS_ORIGINS,
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type", "X-API-Key", "Authorization"],
            "supports_credentials": True,
        }


class DevelopmentConfig(Config):
    """开发环境配置"""
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(Config):
    """生产环境配置"""
    DEBUG = False
    LOG_LEVEL = 'INFO'

    @classmethod
    def validate(cls):
        """检查生产环境必需的配置"""
        errors = []

        if not os.environ.get('SECRET_KEY'):
            errors.append('SECRET_KEY 环境变量未设置')

        if not os.environ.get('ADMIN_API_KEY'):
            errors.append('ADMIN_API_KEY 环境变量未设置（同步触发接口不可用）')

        if not os.environ.get('CATALOG_CLIENT_FACTORY'):
            errors.append('CATALOG_CLIENT_FACTORY 环境变量未设置（无法执行同步）')

        if errors:
            print("⚠️ 生产环境配置警告:")
            for error in errors:
                print(f"  - {error}")


class TestingConfig(Config):
    """测试环境配置"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    TOKEN_CACHE_PATH = ''
    TOKEN_POLL_INTERVAL_MS = 0
    METADATA_POLL_INTERVAL_MS = 0


# 配置映射
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """根据 FLASK_ENV 获取配置类"""
    env = os.environ.get('FLASK_ENV', 'development')
    return config.get(env, config['default'])
