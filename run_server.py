"""
パーティ移動合意エンジン - サーバ起動スクリプト
gevent のモンキーパッチ後にアプリケーションを起動する。
"""
from gevent import monkey
monkey.patch_all()

from app import create_app  # noqa: E402
from config import Config  # noqa: E402
from utils.logger import get_logger  # noqa: E402

logger = get_logger("run_server")


def main():
    app, socketio = create_app(config=Config)
    logger.info("""
    ======================================
      Party Movement Consensus Engine
      http://localhost:%d
    ======================================
    """, Config.PORT)
    try:
        socketio.run(app, host="0.0.0.0", port=Config.PORT, debug=Config.DEBUG)
    finally:
        app.extensions["party_movement"].shutdown()


if __name__ == "__main__":
    main()
