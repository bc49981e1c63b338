"""
应用模型
"""
from datetime import datetime
from ..extensions import db


class App(db.Model):
    """镜像的目录应用"""
    __tablename__ = 'apps'

    app_id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    name = db.Column(db.String(256))

    # 最近一次从目录获取的变更号，NULL 表示从未获取过
    change_number = db.Column(db.Integer, nullable=True)

    last_updated = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'app_id': self.app_id,
            'name': self.name,
            'change_number': self.change_number or 0,
            'last_updated': self.last_updated.isoformat() + 'Z' if self.last_updated else None,
        }

    def __repr__(self):
        return f'<App {self.app_id}>'
