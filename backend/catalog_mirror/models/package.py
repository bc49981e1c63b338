"""
包模型
"""
from datetime import datetime
from ..extensions import db


class Package(db.Model):
    """镜像的目录包"""
    __tablename__ = 'packages'

    package_id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    name = db.Column(db.String(256))

    # 最近一次从目录获取的变更号，NULL 表示从未获取过
    change_number = db.Column(db.Integer, nullable=True)

    last_updated = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contents = db.relationship('PackageApp', backref='package', lazy='dynamic')

    def to_dict(self):
        return {
            'package_id': self.package_id,
            'name': self.name,
            'change_number': self.change_number or 0,
            'last_updated': self.last_updated.isoformat() + 'Z' if self.last_updated else None,
        }

    def __repr__(self):
        return f'<Package {self.package_id}>'


class PackageApp(db.Model):
    """包内容条目：应用或 depot"""
    __tablename__ = 'package_apps'

    __table_args__ = (
        db.Index('ix_package_apps_type_app', 'type', 'app_id'),
    )

    TYPE_APP = 'app'
    TYPE_DEPOT = 'depot'

    package_id = db.Column(db.Integer, db.ForeignKey('packages.package_id'), primary_key=True)
    app_id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    type = db.Column(db.String(16), primary_key=True, default=TYPE_APP)

    def __repr__(self):
        return f'<PackageApp {self.package_id}:{self.type}:{self.app_id}>'
