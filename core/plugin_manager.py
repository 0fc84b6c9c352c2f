import importlib
import logging
from typing import Dict, Any, Type, Callable, Tuple
from .errors import ConfigError
from .interfaces import IPlugin, IFaceModel, IVideoSource, IRosterSource

logger = logging.getLogger("PluginManager")


class PluginManager:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(PluginManager, cls).__new__(cls)
            cls._instance.active_model = None
            cls._instance.active_camera = None
            cls._instance.active_roster = None
        return cls._instance

    def load_plugin(self, module_path: str, class_name: str) -> Type[IPlugin]:
        """Dynamically load a plugin class."""
        try:
            module = importlib.import_module(module_path)
            plugin_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            logger.error(f"Failed to load plugin {module_path}.{class_name}: {e}")
            raise ConfigError(f"Cannot load plugin {module_path}.{class_name}: {e}") from e
        if not (isinstance(plugin_class, type) and issubclass(plugin_class, IPlugin)):
            raise ConfigError(f"{module_path}.{class_name} is not a plugin class")
        return plugin_class

    def _plugin_definition(self, config: Dict[str, Any], component: str, section: str) -> Tuple[str, Dict[str, Any]]:
        name = config.get('active_components', {}).get(component)
        if not name:
            raise ConfigError(f"No {component} defined in active_components")

        plugin_def = config.get(section, {}).get(name)
        if not plugin_def:
            raise ConfigError(f"Definition for {component} '{name}' not found in '{section}'")
        if 'module' not in plugin_def or 'class' not in plugin_def:
            raise ConfigError(f"Definition for {component} '{name}' needs 'module' and 'class'")
        return name, plugin_def

    def _create(self, config: Dict[str, Any], component: str, section: str, interface: Type[IPlugin]) -> IPlugin:
        name, plugin_def = self._plugin_definition(config, component, section)
        cls = self.load_plugin(plugin_def['module'], plugin_def['class'])
        if not issubclass(cls, interface):
            raise ConfigError(f"{component} '{name}' must implement {interface.__name__}")
        instance = cls()
        instance.initialize(plugin_def.get('params', {}) or {})
        logger.info(f"Initialized {component}: {name}")
        return instance

    def initialize_model(self, config: Dict[str, Any]) -> IFaceModel:
        """Initialize the face recognition model defined in config."""
        self.active_model = self._create(config, 'face_model', 'models', IFaceModel)
        return self.active_model

    def initialize_camera(self, config: Dict[str, Any]) -> IVideoSource:
        """Initialize (acquire) the camera source defined in config."""
        self.active_camera = self._create(config, 'camera', 'cameras', IVideoSource)
        return self.active_camera

    def initialize_roster(self, config: Dict[str, Any]) -> IRosterSource:
        """Initialize the roster source defined in config."""
        self.active_roster = self._create(config, 'roster', 'rosters', IRosterSource)
        return self.active_roster

    def camera_factory(self, config: Dict[str, Any]) -> Callable[[], IVideoSource]:
        """Deferred camera acquisition, so the device is only opened when the pipeline runs."""
        # Fail fast on a bad definition, before anything is acquired
        self._plugin_definition(config, 'camera', 'cameras')
        return lambda: self.initialize_camera(config)

    def shutdown(self) -> None:
        for attr in ('active_camera', 'active_model', 'active_roster'):
            plugin = getattr(self, attr)
            if plugin is not None:
                plugin.shutdown()
                setattr(self, attr, None)
