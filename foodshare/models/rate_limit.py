from foodshare import db


class RateLimitCounter(db.Model):
    """Fixed-window hit counter shared by every process on the same database"""
    __tablename__ = 'rate_limit_counter'

    key = db.Column(db.String(128), primary_key=True)
    window_start = db.Column(db.DateTime, nullable=False)
    count = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f'<RateLimitCounter {self.key} {self.count}>'
