"""
パーティ移動合意エンジン - Webアプリケーション
Flask + Flask-SocketIO による REST API とリアルタイム通知
"""
from flask import Flask, jsonify, request
from flask_socketio import SocketIO, emit

from config import Config
from core.party_movement import PartyMovementService
from services.location_service import LocationService
from services.party_roster import PartyRoster
from services.time_service import TimeService
from utils.logger import get_logger

logger = get_logger("app")

API_PREFIX = "/api/party-movement"

# エラーコード -> HTTPステータス
ERROR_STATUS = {
    "PROPOSAL_NOT_FOUND": 404,
    "SESSION_NOT_FOUND": 404,
    "ACTIVE_PROPOSAL_EXISTS": 409,
    "VOTING_CLOSED": 409,
    "STATUS_CONFLICT": 409,
    "NOT_APPROVED": 409,
    "TIME_ADVANCE_FAILED": 500,
    "INTERNAL_ERROR": 500,
}


def build_default_service(config, emit_callback) -> PartyMovementService:
    """設定に基づいてロスター・位置・時間サービスを用意し、エンジンを組み立てる"""
    roster = PartyRoster()
    locations = LocationService()

    seed_file = getattr(config, "PARTY_SEED_FILE", "")
    if seed_file:
        roster.load_json(seed_file)
        for session_id in roster.sessions:
            for member in roster.get_party_members(session_id):
                if member.current_location_id:
                    locations.place_character(member.character_id, member.current_location_id)

    return PartyMovementService.build(
        roster, locations, TimeService(), config=config, emit_callback=emit_callback,
    )


def _respond(result: dict, success_status: int = 200):
    """サービスのエンベロープをHTTPレスポンスに変換する"""
    if result["success"]:
        return jsonify(result), success_status
    return jsonify(result), ERROR_STATUS.get(result.get("code"), 400)


def _missing(*names):
    return jsonify({
        "success": False,
        "error": f"{', '.join(names)} required",
        "code": "INVALID_REQUEST",
    }), 400


def create_app(service: PartyMovementService = None, config=Config):
    """
    Flask アプリケーションと SocketIO を生成する。

    Args:
        service: 組み立て済みの PartyMovementService（テスト用）。None なら設定から生成
        config: Config オブジェクト
    Returns:
        (app, socketio)
    """
    app = Flask(__name__)
    app.config.from_object(config)

    socketio = SocketIO(
        app,
        cors_allowed_origins="*",
        async_mode=getattr(config, "SOCKETIO_ASYNC_MODE", "gevent"),
    )

    def socketio_emit(event, data):
        socketio.emit(event, data)

    if service is None:
        service = build_default_service(config, socketio_emit)
    app.extensions["party_movement"] = service

    # ============================================================
    # REST ルート
    # ============================================================
    @app.route(f"{API_PREFIX}/state/<session_id>")
    def get_state(session_id):
        """パーティ移動状態を返す"""
        return _respond(service.get_party_movement_state(session_id))

    @app.route(f"{API_PREFIX}/proposals", methods=["POST"])
    def create_proposal():
        """移動提案を作成する"""
        data = request.get_json(silent=True) or {}
        if not data.get("session_id") or not data.get("proposer_id") or not data.get("target_location_id"):
            return _missing("session_id", "proposer_id", "target_location_id")
        if not data.get("movement_method") or not data.get("reason"):
            return _missing("movement_method", "reason")

        result = service.create_proposal(
            session_id=data["session_id"],
            proposer_id=data["proposer_id"],
            target_location_id=data["target_location_id"],
            movement_method=data["movement_method"],
            reason=data["reason"],
            urgency=data.get("urgency", "normal"),
            voting_deadline=data.get("voting_deadline"),
            difficulty=data.get("difficulty", "normal"),
            tags=data.get("tags"),
        )
        return _respond(result, success_status=201)

    @app.route(f"{API_PREFIX}/proposals/<proposal_id>")
    def get_proposal(proposal_id):
        return _respond(service.get_proposal(proposal_id))

    @app.route(f"{API_PREFIX}/proposals/<proposal_id>", methods=["DELETE"])
    def cancel_proposal(proposal_id):
        """提案をキャンセルする"""
        data = request.get_json(silent=True) or {}
        return _respond(service.cancel_proposal(proposal_id, data.get("reason")))

    @app.route(f"{API_PREFIX}/votes", methods=["POST"])
    def cast_vote():
        """投票する"""
        data = request.get_json(silent=True) or {}
        if not data.get("proposal_id") or not data.get("voter_id") or not data.get("choice"):
            return _missing("proposal_id", "voter_id", "choice")

        result = service.cast_vote(
            data["proposal_id"], data["voter_id"], data["choice"], data.get("reason", ""),
        )
        return _respond(result)

    @app.route(f"{API_PREFIX}/proposals/<proposal_id>/voting-summary")
    def get_voting_summary(proposal_id):
        return _respond(service.get_voting_summary(proposal_id))

    @app.route(f"{API_PREFIX}/proposals/<proposal_id>/mixed-status")
    def get_mixed_status(proposal_id):
        return _respond(service.get_mixed_voting_status(proposal_id))

    @app.route(f"{API_PREFIX}/execute", methods=["POST"])
    def execute_movement():
        """承認済みの移動を実行する"""
        data = request.get_json(silent=True) or {}
        if not data.get("proposal_id"):
            return _missing("proposal_id")
        return _respond(service.execute_movement(
            data["proposal_id"], force_execute=bool(data.get("force_execute", False)),
        ))

    @app.route(f"{API_PREFIX}/settings/<session_id>")
    def get_settings(session_id):
        return _respond(service.get_consensus_settings(session_id))

    @app.route(f"{API_PREFIX}/settings/<session_id>", methods=["PUT"])
    def update_settings(session_id):
        data = request.get_json(silent=True) or {}
        return _respond(service.update_consensus_settings(session_id, data.get("settings", {})))

    @app.route(f"{API_PREFIX}/history/<session_id>")
    def get_history(session_id):
        limit = request.args.get("limit", 10, type=int)
        return _respond(service.get_movement_history(session_id, limit))

    # ============================================================
    # WebSocket イベント
    # ============================================================
    @socketio.on("connect")
    def handle_connect():
        logger.info("クライアント接続: %s", request.sid)

    @socketio.on("disconnect")
    def handle_disconnect():
        logger.info("クライアント切断: %s", request.sid)

    @socketio.on("create_proposal")
    def handle_create_proposal(data):
        """
        移動提案
        data: { "session_id", "proposer_id", "target_location_id", "movement_method",
                "reason", "urgency", "voting_deadline", "difficulty", "tags" }
        """
        data = data or {}
        result = service.create_proposal(
            session_id=data.get("session_id"),
            proposer_id=data.get("proposer_id"),
            target_location_id=data.get("target_location_id"),
            movement_method=data.get("movement_method"),
            reason=data.get("reason", ""),
            urgency=data.get("urgency", "normal"),
            voting_deadline=data.get("voting_deadline"),
            difficulty=data.get("difficulty", "normal"),
            tags=data.get("tags"),
        )
        emit("create_proposal_result", result)

    @socketio.on("cast_vote")
    def handle_cast_vote(data):
        """
        投票
        data: { "proposal_id": "...", "voter_id": "...", "choice": "approve", "reason": "..." }
        """
        data = data or {}
        result = service.cast_vote(
            data.get("proposal_id"), data.get("voter_id"), data.get("choice"), data.get("reason", ""),
        )
        emit("cast_vote_result", result)

    @socketio.on("execute_movement")
    def handle_execute_movement(data):
        data = data or {}
        result = service.execute_movement(
            data.get("proposal_id"), force_execute=bool(data.get("force_execute", False)),
        )
        emit("execute_movement_result", result)

    return app, socketio
