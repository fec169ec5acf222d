"""
Cart Service — カート管理と決済連携

カート操作 (CRUD)、決済プロバイダーへの注文作成、
署名付き Webhook による決済ステータスの反映を提供する。
"""
