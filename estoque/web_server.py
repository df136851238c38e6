from __future__ import annotations

from datetime import timedelta
from io import BytesIO
import logging

from flask import Flask, Response, jsonify, request, send_file
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException

from estoque.db import session_scope
from estoque.errors import EstoqueError
from estoque.excel_export import export_products
from estoque.excel_import import import_products, temporary_upload
from estoque.security import admin_required, auth_required, current_user
from estoque.services import AuthService, ProductService, UserService
from estoque.settings import Settings

logger = logging.getLogger(__name__)


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _configure_jwt(app: Flask, settings: Settings) -> JWTManager:
    app.config["JWT_SECRET_KEY"] = settings.JWT_SECRET_KEY
    hours = int(settings.JWT_EXPIRES_HOURS or 0)
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(hours=hours) if hours > 0 else False

    jwt = JWTManager(app)

    @jwt.unauthorized_loader
    def _missing_token(_reason: str):
        return _error("Por favor, autentique-se", 401)

    @jwt.invalid_token_loader
    def _invalid_token(_reason: str):
        return _error("Token inválido", 401)

    @jwt.expired_token_loader
    def _expired_token(_header, _payload):
        return _error("Sessão expirada, faça login novamente", 401)

    return jwt


def create_app(session_factory, settings: Settings) -> Flask:
    settings.upload_dir.mkdir(parents=True, exist_ok=True)

    app = Flask(__name__, static_folder=None)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes
    app.extensions["estoque"] = {"session_factory": session_factory, "settings": settings}

    CORS(app, origins=settings.CORS_ORIGINS)
    _configure_jwt(app, settings)

    @app.errorhandler(EstoqueError)
    def handle_estoque_error(e: EstoqueError):
        return _error(e.message, e.status_code)

    @app.errorhandler(413)
    def handle_too_large(_e):
        return _error(f"Arquivo excede o limite de {settings.MAX_UPLOAD_MB}MB", 413)

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return _error(e.description or e.name, e.code or 500)

    @app.get("/health")
    def health() -> Response:
        return jsonify({"ok": True, "app": settings.APP_NAME})

    # --- Auth ---
    @app.post("/api/auth/login")
    def api_login():
        data = request.get_json(silent=True) or {}
        with session_scope(session_factory) as session:
            result = AuthService(session).login(str(data.get("username") or ""), str(data.get("password") or ""))
        return jsonify(result)

    @app.post("/api/auth/change-password")
    @auth_required
    def api_change_password():
        data = request.get_json(silent=True) or {}
        with session_scope(session_factory) as session:
            AuthService(session).change_password(
                current_user().id,
                str(data.get("currentPassword") or ""),
                str(data.get("newPassword") or ""),
            )
        return jsonify({"message": "Senha alterada com sucesso"})

    # --- Users (admin only) ---
    @app.post("/api/users")
    @admin_required
    def api_create_user():
        data = request.get_json(silent=True) or {}
        with session_scope(session_factory) as session:
            user = UserService(session).create(
                current_user(),
                str(data.get("username") or ""),
                str(data.get("password") or ""),
                str(data.get("role") or "user"),
            )
            body = user.to_dict()
        return jsonify(body), 201

    @app.get("/api/users")
    @admin_required
    def api_list_users():
        with session_scope(session_factory) as session:
            body = [u.to_dict() for u in UserService(session).list()]
        return jsonify(body)

    @app.get("/api/users/logs")
    @admin_required
    def api_user_logs():
        with session_scope(session_factory) as session:
            body = UserService(session).logs_as_dicts()
        return jsonify(body)

    @app.patch("/api/users/<int:user_id>/toggle-status")
    @admin_required
    def api_toggle_user(user_id: int):
        with session_scope(session_factory) as session:
            body = UserService(session).toggle_status(current_user(), user_id).to_dict()
        return jsonify(body)

    @app.delete("/api/users/<int:user_id>")
    @admin_required
    def api_delete_user(user_id: int):
        with session_scope(session_factory) as session:
            UserService(session).delete(current_user(), user_id)
        return jsonify({"message": "Usuário excluído com sucesso"})

    # --- Products ---
    @app.get("/api/products")
    @auth_required
    def api_list_products():
        try:
            with session_scope(session_factory) as session:
                body = [p.to_dict() for p in ProductService(session).list()]
        except EstoqueError:
            raise
        except Exception:
            logger.exception("Erro ao buscar produtos")
            return _error("Erro ao buscar produtos", 500)
        return jsonify(body)

    @app.get("/api/products/stock-summary")
    @auth_required
    def api_stock_summary():
        with session_scope(session_factory) as session:
            body = ProductService(session).stock_summary()
        return jsonify(body)

    @app.get("/api/products/export/excel")
    @auth_required
    def api_export_excel():
        try:
            with session_scope(session_factory) as session:
                exported = export_products(session)
        except EstoqueError:
            raise
        except Exception:
            logger.exception("Erro ao exportar produtos para Excel")
            return _error("Erro ao exportar produtos para Excel", 500)

        return send_file(
            BytesIO(exported.content),
            mimetype=exported.mimetype,
            as_attachment=True,
            download_name=exported.filename,
        )

    @app.post("/api/products/import/excel")
    @auth_required
    def api_import_excel():
        try:
            with temporary_upload(request.files.get("file"), settings.upload_dir) as tmp:
                with session_scope(session_factory) as session:
                    summary = import_products(tmp, session, by_header=settings.IMPORT_BY_HEADER)
        except (EstoqueError, HTTPException):
            raise
        except Exception:
            logger.exception("Erro ao processar arquivo Excel")
            return _error("Erro ao processar arquivo Excel", 500)
        return jsonify(summary.to_dict())

    @app.get("/api/products/<int:product_id>")
    @auth_required
    def api_get_product(product_id: int):
        with session_scope(session_factory) as session:
            body = ProductService(session).get(product_id).to_dict()
        return jsonify(body)

    @app.get("/api/products/<int:product_id>/metrics")
    @auth_required
    def api_product_metrics(product_id: int):
        with session_scope(session_factory) as session:
            body = ProductService(session).metrics(product_id)
        return jsonify(body)

    @app.post("/api/products")
    @auth_required
    def api_create_product():
        data = request.get_json(silent=True) or {}
        with session_scope(session_factory) as session:
            body = ProductService(session).create(data).to_dict()
        return jsonify(body), 201

    @app.put("/api/products/<int:product_id>")
    @auth_required
    def api_update_product(product_id: int):
        data = request.get_json(silent=True) or {}
        with session_scope(session_factory) as session:
            body = ProductService(session).update(product_id, data).to_dict()
        return jsonify(body)

    @app.patch("/api/products/<int:product_id>/toggle-status")
    @auth_required
    def api_toggle_product(product_id: int):
        with session_scope(session_factory) as session:
            body = ProductService(session).toggle_status(product_id).to_dict()
        return jsonify(body)

    @app.delete("/api/products/<int:product_id>")
    @auth_required
    def api_delete_product(product_id: int):
        with session_scope(session_factory) as session:
            ProductService(session).delete(product_id)
        return jsonify({"message": "Produto deletado com sucesso"})

    return app
