import logging
import os
import colorlog
from flask import Flask, jsonify
from config import config
from app.extensions import db, migrate
from app.exceptions import NexusException

# 导入 commands 模块，用于注册 CLI 命令
from app import commands


def create_app(config_name='default', config_overrides=None):
    """NEXUS 订单/库存核心 应用工厂函数"""
    app = Flask(__name__)

    # 1. 加载配置
    app.config.from_object(config[config_name])
    if config_overrides:
        app.config.update(config_overrides)
    config[config_name].init_app(app)

    # 2. 初始化扩展
    db.init_app(app)
    migrate.init_app(app, db)

    from app.models import register_append_only_guard
    register_append_only_guard()

    # 3. 配置日志
    configure_logging(app)

    # 4. 注册蓝图 (Blueprints)
    register_blueprints(app)

    # 5. 注册全局错误处理
    register_error_handlers(app)

    # 6. 注册 CLI 命令
    register_commands(app)

    # 7. 生产环境自动初始化数据库
    auto_init_database(app)

    return app


def auto_init_database(app):
    """生产环境首次启动时自动建表"""
    flask_env = os.environ.get('FLASK_ENV', '')
    if app.testing or not (flask_env == 'production' or os.environ.get('DATABASE_URL')):
        return
    with app.app_context():
        from sqlalchemy import inspect
        tables = inspect(db.engine).get_table_names()
        if 'trade_orders' not in tables:
            app.logger.info('🚀 首次启动，正在创建数据库表...')
            db.create_all()
            app.logger.info('✅ 数据库初始化完成！')


def register_blueprints(app):
    """注册业务蓝图"""
    # 订单/采购/库存 JSON 接口
    from app.blueprints.api import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')


def register_error_handlers(app):
    @app.errorhandler(NexusException)
    def handle_nexus_exception(e):
        return jsonify(e.to_dict()), e.code

    @app.errorhandler(404)
    def page_not_found(e):
        return jsonify({'success': False, 'error': 'not_found', 'message': 'Not Found', 'code': 404}), 404

    @app.errorhandler(500)
    def internal_server_error(e):
        return jsonify({'success': False, 'error': 'internal_error', 'message': 'Internal Server Error',
                        'code': 500}), 500


def register_commands(app):
    """注册 Flask CLI 命令"""
    app.cli.add_command(commands.forge)
    app.cli.add_command(commands.status)
    app.cli.add_command(commands.reconcile)


def configure_logging(app):
    """配置彩色控制台日志"""
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    if any(getattr(h, '_nexus', False) for h in app.logger.handlers):
        return

    handler = logging.StreamHandler()
    handler.setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    handler._nexus = True

    formatter = colorlog.ColoredFormatter(
        "%(log_color)s[%(asctime)s] %(levelname)-8s%(reset)s %(blue)s%(message)s",
        datefmt="%H:%M:%S",
        reset=True,
        log_colors={
            'DEBUG':    'cyan',
            'INFO':     'green',
            'WARNING':  'yellow',
            'ERROR':    'red',
            'CRITICAL': 'red,bg_white',
        },
        secondary_log_colors={},
        style='%'
    )
    handler.setFormatter(formatter)
    app.logger.addHandler(handler)
