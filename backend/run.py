"""
应用入口
目录镜像 - 同步服务

启动方式:
    python run.py

环境变量配置:
    - 复制 env.example 为 .env
    - CATALOG_CLIENT_FACTORY 指向宿主进程提供的目录客户端工厂
    - FULL_RUN 设置后，启动完成即按该模式执行一次全量同步
"""
import sys
import os

# 添加 backend 目录到 Python 路径
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from catalog_mirror import create_app, start_configured_full_run
from catalog_mirror.config import Config, get_config

# 初始化数据目录
Config.init_paths()

# 获取配置类
config_class = get_config()

# 创建应用实例
app = create_app(config_class)

if __name__ == '__main__':
    # 在生产环境验证配置
    env = os.environ.get('FLASK_ENV', 'development')
    if env == 'production':
        config_class.validate()

    print("=" * 60)
    print("目录镜像 - 同步服务")
    print("=" * 60)
    print(f"📌 服务地址: http://localhost:8000")
    print(f"📌 API 地址: http://localhost:8000/api")
    print(f"📌 环境: {env}")
    print(f"📌 数据库: {app.config['SQLALCHEMY_DATABASE_URI']}")
    print(f"📌 CORS 允许来源: {', '.join(config_class.CORS_ORIGINS)}")

    if app.config.get('CATALOG_CLIENT_FACTORY'):
        print(f"🔌 目录客户端: {app.config['CATALOG_CLIENT_FACTORY']}")
    else:
        print("⚠️  目录客户端: 未配置 (请设置 CATALOG_CLIENT_FACTORY)")

    if app.config.get('ADMIN_API_KEY'):
        print("🔒 管理员认证: 已启用")
    else:
        print("⚠️  管理员认证: 未启用 (请设置 ADMIN_API_KEY，同步触发接口不可用)")

    print("=" * 60)

    start_configured_full_run(app)

    app.run(host='0.0.0.0', port=8000, debug=(env == 'development'), use_reloader=False)
