from sqlalchemy import orm


class Query(orm.Query):
    def get_or_raise(self, pk):
        entity = self.column_descriptions[0]["entity"]
        inst = self.session.get(entity, pk)
        if inst is None:
            raise LookupError(f"{entity.__name__} {pk} not found")
        return inst

