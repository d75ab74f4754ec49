class IdentityMap:
    def __init__(self):
        self._map = {}

    def get(self, model_class, pk):
        return self._map.get((model_class, pk))

    def add(self, model_class, pk, instance):
        self._map[(model_class, pk)] = instance

    def remove(self, model_class, pk):
        self._map.pop((model_class, pk), None)

    def of_class(self, model_class):
        return [obj for (cls, _), obj in self._map.items() if cls is model_class]

    def values(self):
        return list(self._map.values())

    def clear(self):
        self._map.clear()

    def __len__(self):
        return len(self._map)
